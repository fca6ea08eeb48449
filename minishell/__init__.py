"""Core of a small shell: environment, builtins, command execution, pipelines and here-documents."""

__version__ = "0.1.0"