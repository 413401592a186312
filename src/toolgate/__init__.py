"""
toolgate - Permission gate for agent tool calls.

toolgate decides, per tool call, whether an autonomous agent may run it
automatically, must ask the user first, or may not use the tool at all.
It provides:
- Ordered allow/ask/exclude rules with glob and argument matching
- Runtime risk evaluation by the tools themselves (can only tighten)
- Hot reload of ~/.toolgate/permissions.yaml

Example usage:
    $ toolgate init
    $ toolgate check run_terminal_command -a "command=git push"
    $ toolgate show
"""

__version__ = "0.1.0"
__author__ = "toolgate Contributors"

__all__ = [
    "__version__",
    "__author__",
]
