"""
NodeGate error taxonomy.

Startup errors (configuration, state conflicts, credentials, keystore)
are fatal and carry an operator-facing message. Authorization errors are
per request and carry the HTTP status they map to.
"""

from typing import Optional


class NodeGateError(Exception):
    """Base class for all NodeGate errors."""


# ===== CONFIGURATION =====

class ConfigurationError(NodeGateError):
    """Missing or contradictory command-line arguments."""


class MissingPassword(ConfigurationError):
    def __init__(self):
        super().__init__("❌ A password is required. Pass it with --password.")


class MissingSeedPhrase(ConfigurationError):
    def __init__(self):
        super().__init__("❌ --bootstrap requires a seed phrase. Pass it with --suri.")


class SeedPhraseNotAllowedOnRestart(ConfigurationError):
    def __init__(self):
        super().__init__(
            "❌ --suri is only accepted together with --bootstrap. "
            "The node is restarted from its keystore; omit --suri."
        )


# ===== STATE CONFLICTS =====

class StateConflictError(NodeGateError):
    """On-disk state contradicts the requested startup flow."""


class DirectoryAlreadyConfigured(StateConflictError):
    def __init__(self, path):
        self.path = path
        super().__init__(
            f"❌ {path} is already configured. Restart the node without --bootstrap."
        )


class DirectoryNotConfigured(StateConflictError):
    def __init__(self, path):
        self.path = path
        super().__init__(
            f"❌ {path} is not configured. Run the bootstrap process first with --bootstrap."
        )


# ===== CREDENTIALS =====

class CredentialError(NodeGateError):
    """Wrong password, undecryptable keystore or missing key material."""


class IncorrectPassword(CredentialError):
    def __init__(self):
        super().__init__("❌ Incorrect password for this node. Please verify and try again.")


class IncorrectOrMissingPassword(CredentialError):
    """The keystore secret is absent, wrong or unexpected."""

    def __init__(self, message: str, secret_supplied: bool):
        self.secret_supplied = secret_supplied
        super().__init__(message)


class InvalidSeedPhrase(CredentialError):
    def __init__(self, scheme: str, reason: Optional[str] = None):
        self.scheme = scheme
        detail = f": {reason}" if reason else ""
        super().__init__(f"❌ Seed phrase cannot be parsed into an {scheme} keypair{detail}")


class PublicKeyNotFound(CredentialError):
    def __init__(self, key_name: str):
        self.key_name = key_name
        super().__init__(f"❌ {key_name} public key not found in keystore")


class SigningFailed(CredentialError):
    def __init__(self, reason: str = "No private key found."):
        super().__init__(f"❌ Failed to sign payload with node identity keypair. {reason}")


# ===== KEYSTORE =====

class KeystoreError(NodeGateError):
    """Keystore directory cannot be created or located."""


class KeystoreCreationFailed(KeystoreError):
    pass


class KeystoreNotFound(KeystoreError):
    def __init__(self, path):
        self.path = path
        super().__init__(
            f"Keystore not found at {path}. Please run the bootstrap process first."
        )


# ===== PERSISTENCE =====

class PersistenceError(NodeGateError):
    """Allowlist file is corrupt or cannot be written."""


class CorruptedAllowlist(PersistenceError):
    def __init__(self, path, reason: str):
        self.path = path
        super().__init__(f"Allowlist file {path} is corrupted: {reason}")


class AllowlistWriteFailed(PersistenceError):
    def __init__(self, path, reason: str):
        self.path = path
        super().__init__(f"Failed to persist allowlist {path}: {reason}")


# ===== AUTHORIZATION =====

class AuthorizationError(NodeGateError):
    """Request rejected by the gateway. Not fatal."""

    status_code = 403

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class BadRequest(AuthorizationError):
    status_code = 400


class Unauthorized(AuthorizationError):
    status_code = 401


class Forbidden(AuthorizationError):
    status_code = 403
