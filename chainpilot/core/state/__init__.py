from .refresher import AccountSnapshot, RefreshScope, StateRefresher

__all__ = ["AccountSnapshot", "RefreshScope", "StateRefresher"]
