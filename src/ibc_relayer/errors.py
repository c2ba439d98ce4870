"""
Error types for the IBC relayer.

Every failure raised by the relayer derives from RelayerError so callers can
dispatch on the exception class instead of matching message text.
"""


class RelayerError(Exception):
    """Base class for relayer errors."""


class ConfigLoadError(RelayerError):
    """The configuration document is absent or malformed."""


class ConfigSaveError(RelayerError):
    """The configuration document could not be written."""


class NotFoundError(RelayerError, LookupError):
    """A chain, path or account identifier does not exist."""

    kind = "item"

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"{self.kind} {identifier!r} not found")


class ChainNotFoundError(NotFoundError):
    kind = "chain"


class PathNotFoundError(NotFoundError):
    kind = "path"


class PathAlreadyLinkedError(RelayerError):
    """The path already has a channel; linking it again is a no-op."""

    def __init__(self, path_id: str):
        self.path_id = path_id
        super().__init__(f"path already linked: {path_id}")


class GasPriceParseError(RelayerError, ValueError):
    def __init__(self, gas_price: str):
        self.gas_price = gas_price
        super().__init__(f"invalid gas price {gas_price!r}: expected <amount><denom>, e.g. 0.025stake")


class ChainQueryError(RelayerError):
    """A chain RPC query failed."""


class InsufficientFundsError(RelayerError):
    def __init__(self, address: str, account: str, chain_id: str):
        self.address = address
        self.account = account
        self.chain_id = chain_id
        super().__init__(
            f'account "{address}({account})" on {chain_id!r} chain does not have enough balances'
        )


class KeyExportError(RelayerError):
    """The account registry failed to export a key."""


class AccountDoesNotExistError(KeyExportError, NotFoundError):
    kind = "account"

    def __init__(self, name: str):
        NotFoundError.__init__(self, name)

    @property
    def name(self) -> str:
        return self.identifier


class AccountSetupError(RelayerError):
    """User guidance produced from an AccountDoesNotExistError."""


class KeyDecodeError(RelayerError):
    """An exported key could not be unarmored or decrypted."""


class UnsupportedAlgorithmError(RelayerError):
    def __init__(self, algorithm: str, required: str = "secp256k1"):
        self.algorithm = algorithm
        self.required = required
        super().__init__(f"private key algorithm must be {required} instead of {algorithm}")


class ExecutorError(RelayerError):
    """The external relay executor failed an action."""

    def __init__(self, action: str, path_id: str, message: str):
        self.action = action
        self.path_id = path_id
        self.message = message
        super().__init__(f"relayer {action} failed for path {path_id!r}: {message}")


def handle_account_error(err: Exception) -> Exception:
    """
    Rewrite a missing-account error into guidance for the operator.

    Any other error is returned unchanged. The rewritten error keeps the
    original as its cause.
    """
    if not isinstance(err, AccountDoesNotExistError):
        return err

    guidance = AccountSetupError(
        f"{err}: make sure to create or import your account through the "
        f'"keys add" or "keys import" commands of your chain binary'
    )
    guidance.__cause__ = err
    return guidance
