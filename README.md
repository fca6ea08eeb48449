# minishell

The core of a small POSIX-style shell, as a Python library. It covers what
sits between an already parsed command line and the processes it starts:

- an ordered environment with exported and declared-only variables
  (`minishell.environment`);
- the data model for parsed commands and redirections, with the check for
  ambiguous redirections (`minishell.model`);
- the builtins `echo`, `export`, `unset`, `env` and `exit`
  (`minishell.builtins`);
- running one command, builtin or external, with `PATH` lookup and
  shell-style exit statuses (`minishell.executor`);
- pipelines of several commands (`minishell.pipeline`);
- here-documents, with a limit of 16 per command line (`minishell.heredoc`);
- small text helpers (`minishell.textutils`).

It has no runtime dependencies beyond the standard library and needs a
POSIX system. The `test` extra pulls in pytest.

## Environment

```python
import os
from minishell.environment import Environment

env = Environment.from_environ(os.environ)
print(env.get("HOME"))
print(env.path())          # value of PATH, or None
envp = env.to_envp()       # ["KEY=VALUE", ...]; a missing value gives "KEY="
```

`from_environ` accepts a mapping or `KEY=VALUE` strings. `OLDPWD` is kept
but emptied and hidden.

`Environment.defaults(cwd)` builds the minimal environment a shell starts
with when it inherits none: a fallback `PATH`, a valueless `OLDPWD`, `PWD`
and `SHLVL=1`. The fallback `PATH` is used for lookups but not shown by
`env`.

Each entry is an `EnvVar` with `key`, `value`, `hidden` and `for_path`.
`Environment` also offers `find`, `append`, `remove`, `declare` (a hidden,
valueless entry, as `export NAME` makes), `sort`, `visible()` (what `env`
prints), iteration and `len()`.

## Builtins

Builtins write to the streams they are given and return an exit status:

```python
import io
from minishell.builtins import echo, export_builtin, unset_builtin, env_builtin

out, err = io.StringIO(), io.StringIO()
echo(["echo", "-nnn", "hello", "world"], out)        # "hello world", no newline
export_builtin(["export", "GREETING=hi", "PATH+=:/opt/bin"], env, out, err)
unset_builtin(["unset", "GREETING"], env, out)
env_builtin(["env"], env, out, err)
```

- `export` with no arguments lists every variable, sorted, as
  `declare -x KEY="VALUE"`; with arguments it handles `KEY=VALUE`,
  `KEY+=VALUE` and bare `KEY`. Invalid names give status 1.
- `unset` removes variables; invalid names give status 1.
- `env` prints the visible variables, or reports status 127 when the
  environment is empty.
- `exit_builtin(args, state, out, err)` raises `ShellExit`, whose `status`
  is the status the shell should end with (the last status, the argument
  modulo 256, or 255 for a non-numeric argument). With more than one
  argument it reports an error and returns 1 instead.

Helpers used by these are public too: `is_echo_n_flag`, `parse_long`,
`is_numeric`, `exit_code`, `is_valid_identifier`, `get_key`, `get_value`
and `assignment_kind`.

## Parsed commands

`minishell.model` defines `Command` (`cmd`, `args`, `redirs`, `pipe_out`,
`flag`, ...), `Redirection` (`type`, `file`, `orig_token`, `ambiguous`,
`fd`), `RedirType` (`IN`, `OUT`, `APPEND`, `HEREDOC`) and `ShellState`,
which holds the last `exit_status`.

`find_ambiguous(commands)` marks redirections written as a variable
(`$...`) whose expanded target is empty or holds several words, and trims
spaces from the others. `format_commands(commands)` returns a readable
dump for debugging.

## Running commands

```python
from minishell.executor import execute_single_command
from minishell.model import Command, ShellState

state = ShellState()
status = execute_single_command(Command(args=["ls", "-l"]), env, state)
```

`execute_single_command` runs builtins in the shell itself and anything
else as a child process. `resolve_command(name, env)` finds the file to run
(a name with a slash as given, otherwise each `PATH` directory, or the
current directory when there is no `PATH`) and raises `CommandError`, with
the status to report (126 or 127), when it cannot. `status_from_returncode`
turns a child's return code into a shell status.

`minishell.pipeline.run_pipeline(commands, env, state)` runs the commands
joined by pipes and returns the status of the last one. Each command runs
apart from the shell, so builtins inside a pipeline do not change `env`.
Redirections whose `fd` is already open are applied; a command whose first
redirection has `fd == -1` is skipped with status 1.

## Here-documents

`read_heredoc(lines, delimiter)` gathers lines up to the delimiter and
returns them, each ending in a newline; quotes in the delimiter are removed
before comparing, and if the input ends first nothing is kept.

`collect_heredocs(commands, lines)` reads the body of every here-document
of a command line from `lines` into an unlinked, hidden temporary file and
stores its read descriptor in the redirection's `fd`. It raises
`HeredocLimitError` when there are more than 16 (`check_heredoc_limit`,
`count_heredocs`). `open_heredoc_file`, `random_file_name` and
`random_dir` pick and open the temporary files.

## What this package does not do

There is no interactive prompt and no command to start a shell. The package
does not tokenize or parse command lines, expand variables or quotes, or
open files for `<`, `>` and `>>` redirections: it works on `Command`
objects that are already parsed and expanded, with descriptors already
opened. Here-document bodies are stored as read, without expansion. The
`cd` and `pwd` builtins are not provided; `run_builtin` gives status 0 for
names it does not know.