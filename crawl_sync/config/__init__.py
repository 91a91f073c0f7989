from .settings import ApiCfg, LogCfg, PollCfg, Settings

__all__ = ["ApiCfg", "LogCfg", "PollCfg", "Settings"]
