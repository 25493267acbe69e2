"""Exceptions raised by the installer library.

The CLI turns these into a red error line on stderr and exit code 1.
"""


class PluginsError(Exception):
    """Base class for installer failures that abort a run."""


class SourceError(PluginsError):
    """The plugin source tree is missing or unusable."""


class SettingsError(PluginsError):
    """A host JSON document could not be read or parsed."""
