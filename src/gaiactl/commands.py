"""Shell command templates for the GaiaNet node tool."""
from __future__ import annotations

import shlex
from dataclasses import dataclass

DEFAULT_INSTALL_SCRIPT_URL = (
    "https://github.com/GaiaNet-AI/gaianet-node/releases/latest/download/install.sh"
)


@dataclass(frozen=True, slots=True)
class CommandTemplates:
    """Render the literal commands handed to the process runner."""

    node_bin: str = "gaianet"
    install_script_url: str = DEFAULT_INSTALL_SCRIPT_URL
    shell: str = "bash"
    shell_profile: str = "~/.bashrc"

    def install(self) -> str:
        """Download the release install script and pipe it to the shell."""
        return f"curl -sSfL {shlex.quote(self.install_script_url)} | {self.shell}"

    def upgrade(self) -> str:
        """Re-run the install script in upgrade mode."""
        return f"{self.install()} -s -- --upgrade"

    def reload_profile(self) -> str:
        """Source the user's shell profile so the node tool is on ``PATH``."""
        # Left unquoted so the shell expands ``~``.
        return f"source {self.shell_profile}"

    def init(self) -> str:
        """Initialise the node from its current configuration."""
        return f"{self.node_bin} init"

    def start(self) -> str:
        """Start the node."""
        return f"{self.node_bin} start"

    def stop(self) -> str:
        """Stop the node."""
        return f"{self.node_bin} stop"

    def config(self, key: str, value: str) -> str:
        """Apply a single configuration option."""
        return f"{self.node_bin} config --{key} {shlex.quote(value)}"


__all__ = ["CommandTemplates", "DEFAULT_INSTALL_SCRIPT_URL"]
