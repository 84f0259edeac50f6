from smlbridge.config.serverspec import (
    ServerSpec,
    load_serverspec,
    save_serverspec,
)

__all__ = ["ServerSpec", "load_serverspec", "save_serverspec"]
