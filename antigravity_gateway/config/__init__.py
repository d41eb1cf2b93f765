from antigravity_gateway.config.settings import Config, config

__all__ = ["Config", "config"]
