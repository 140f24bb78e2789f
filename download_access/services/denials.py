from dataclasses import dataclass
from enum import Enum


class DenialCode(str, Enum):
    NOT_FOUND_OR_INACTIVE = "token_not_found"
    EXPIRED = "token_expired"
    LIMIT_REACHED = "download_limit_reached"
    IP_MISMATCH = "ip_mismatch"
    DEVICE_MISMATCH = "device_mismatch"
    NOT_ENTITLED = "not_entitled"


# Messages stay generic so a denial never confirms that an id exists
DENIAL_MESSAGES = {
    DenialCode.NOT_FOUND_OR_INACTIVE: "Token not found or inactive",
    DenialCode.EXPIRED: "Token has expired",
    DenialCode.LIMIT_REACHED: "Download limit reached",
    DenialCode.IP_MISMATCH: "IP address validation failed",
    DenialCode.DEVICE_MISMATCH: "Browser validation failed",
    DenialCode.NOT_ENTITLED: "You do not have access to this download",
}


@dataclass(frozen=True)
class Denial:
    code: DenialCode
    message: str

    @classmethod
    def of(cls, code: DenialCode) -> "Denial":
        return cls(code=code, message=DENIAL_MESSAGES[code])
