from .audit import AuditEvent  # noqa: F401
from .consent import Consent  # noqa: F401
from .wallet_identity import WalletIdentity  # noqa: F401
