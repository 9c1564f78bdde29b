"""Built-in CLI sub-commands for maascli.

* :mod:`~maascli.commands.auth` -- login, logout, status, diagnose.
* :mod:`~maascli.commands.companion` -- companion capability report.
* :mod:`~maascli.commands.memory` -- routed memory operations.

Each module exports a :class:`typer.Typer` sub-application registered on
the root app in :func:`maascli.app.main`.
"""
