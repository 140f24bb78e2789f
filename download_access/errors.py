class DownloadAccessError(Exception):
    """Base class for infrastructure-level failures of the download service."""


class StoreUnavailable(DownloadAccessError):
    """The token store could not be reached or timed out. Callers may retry."""


class PersistenceFailed(StoreUnavailable):
    """A write to the token store failed."""


class TokenNotFound(DownloadAccessError):
    def __init__(self, token_id: str):
        super().__init__(f"Download token {token_id} not found")
        self.token_id = token_id
