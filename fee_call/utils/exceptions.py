"""
Exception hierarchy for the fee-call toolkit

Every error raised by this package derives from FeeCallError so callers can
catch a single type at the top level. Errors carry a numeric code and a
details dict that is safe to serialize into result files.
"""

from typing import Any, Dict, Optional


class ErrorCodes:
    """Numeric error codes grouped by subsystem"""

    UNKNOWN = 1000

    # Configuration (11xx)
    CONFIG_FILE_NOT_FOUND = 1101
    CONFIG_VALIDATION_FAILED = 1102
    CONFIG_PARSE_FAILED = 1103

    # Node / RPC (12xx)
    NODE_CONNECTION_FAILED = 1201
    RPC_ERROR = 1202
    RPC_TIMEOUT = 1203

    # Transactions (13xx)
    TRANSACTION_FAILED = 1301
    TRANSACTION_TIMEOUT = 1302
    TRANSACTION_REVERTED = 1303
    TRANSACTION_SIGNING_FAILED = 1304

    # Contracts (14xx)
    CONTRACT_NOT_FOUND = 1401
    CONTRACT_DEPLOY_FAILED = 1402
    CONTRACT_CALL_FAILED = 1403
    CONTRACT_DATA_INVALID = 1404

    # ABI (15xx)
    ABI_INVALID_FRAGMENT = 1501
    ABI_FUNCTION_NOT_FOUND = 1502
    ABI_ENCODING_FAILED = 1503
    ABI_DECODING_FAILED = 1504


class FeeCallError(Exception):
    """Base exception class for the fee-call toolkit"""

    default_code = ErrorCodes.UNKNOWN

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        self.message = message
        self.code = code if code is not None else self.default_code
        self.details = {k: v for k, v in (details or {}).items() if v is not None}
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for JSON output"""
        result = {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": dict(self.details),
        }
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result


class AbiError(FeeCallError):
    """Invalid ABI fragment, unknown function, or values that cannot be encoded"""

    default_code = ErrorCodes.ABI_ENCODING_FAILED

    def __init__(
        self,
        message: str,
        fragment: Optional[str] = None,
        function_name: Optional[str] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None,
        **details
    ):
        details.update(fragment=fragment, function_name=function_name)
        super().__init__(message, code=code, details=details, cause=cause)


class ConfigurationError(FeeCallError):
    """Configuration file missing, unreadable, or invalid"""

    default_code = ErrorCodes.CONFIG_VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        config_file: Optional[str] = None,
        field: Optional[str] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            message,
            code=code,
            details={"config_file": config_file, "field": field},
            cause=cause
        )


class NodeConnectionError(FeeCallError):
    """The RPC endpoint could not be reached"""

    default_code = ErrorCodes.NODE_CONNECTION_FAILED

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, code=code, details={"url": url}, cause=cause)


class RpcError(FeeCallError):
    """The RPC endpoint answered with an error"""

    default_code = ErrorCodes.RPC_ERROR

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        rpc_code: Optional[int] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            message,
            code=code,
            details={"method": method, "rpc_code": rpc_code},
            cause=cause
        )


class TransactionError(FeeCallError):
    """Transaction could not be built, signed, sent, or was reverted"""

    default_code = ErrorCodes.TRANSACTION_FAILED

    def __init__(
        self,
        message: str,
        tx_hash: Optional[str] = None,
        from_address: Optional[str] = None,
        to_address: Optional[str] = None,
        value: Optional[int] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            message,
            code=code,
            details={
                "tx_hash": tx_hash,
                "from_address": from_address,
                "to_address": to_address,
                "value": value,
            },
            cause=cause
        )


class ContractError(FeeCallError):
    """Contract artifact, deployment, or call failure"""

    default_code = ErrorCodes.CONTRACT_DEPLOY_FAILED

    def __init__(
        self,
        message: str,
        contract_name: Optional[str] = None,
        address: Optional[str] = None,
        code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(
            message,
            code=code,
            details={"contract_name": contract_name, "address": address},
            cause=cause
        )
