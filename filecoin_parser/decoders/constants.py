"""
Protocol constants shared by every decoder version.
"""

STATUS_OK = "Ok"

TX_TYPE_FEE = "Fee"
TX_TYPE_GENESIS = "Genesis"
TX_TYPE_UNKNOWN = "Unknown"

METADATA_PARAMS = "Params"
METADATA_RETURN = "Return"
METADATA_ETH_LOGS = "EthLogs"
METADATA_ERROR = "Error"

# Filecoin exit codes (FVM + builtin actors)
EXIT_CODES = {
    0: STATUS_OK,
    1: "SysErrSenderInvalid",
    2: "SysErrSenderStateInvalid",
    4: "SysErrIllegalInstruction",
    5: "SysErrInvalidReceiver",
    6: "SysErrInsufficientFunds",
    7: "SysErrOutOfGas",
    9: "SysErrIllegalExitCode",
    10: "SysErrFatal",
    11: "SysErrMissingReturn",
    16: "ErrIllegalArgument",
    17: "ErrNotFound",
    18: "ErrForbidden",
    19: "ErrInsufficientFunds",
    20: "ErrIllegalState",
    21: "ErrSerialization",
    22: "ErrUnhandledMessage",
    23: "ErrUnspecified",
    24: "ErrAssertionFailed",
    25: "ErrReadOnly",
    26: "ErrNotPayable",
}

# Method numbers shared by all actors, plus FRC-42 exported methods that
# are unambiguous across actor types.
METHOD_NAMES = {
    0: "Send",
    1: "Constructor",
    3844450837: "InvokeContract",
    2643134072: "AuthenticateMessage",
}


def exit_code_status(exit_code: int) -> str:
    return EXIT_CODES.get(exit_code, f"ExitCode({exit_code})")


def method_name(method_num: int) -> str:
    return METHOD_NAMES.get(method_num, TX_TYPE_UNKNOWN)
