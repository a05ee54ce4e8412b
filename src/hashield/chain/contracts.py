"""Contract ABIs (minimal - only functions we use).

The escrow contracts are external; tuples are passed through exactly as the
caller supplies them.
"""


def _fn(name: str, inputs: list, outputs: list | None = None, mutability: str = "nonpayable") -> dict:
    return {
        "name": name,
        "type": "function",
        "stateMutability": mutability,
        "inputs": inputs,
        "outputs": outputs or [],
    }


def _arg(name: str, type_: str, components: list | None = None) -> dict:
    arg = {"name": name, "type": type_}
    if components is not None:
        arg["components"] = components
    return arg


# IBaseEscrow.Immutables (Address and Timelocks are uint256 wrappers)
IMMUTABLES_COMPONENTS = [
    _arg("orderHash", "bytes32"),
    _arg("hashlock", "bytes32"),
    _arg("maker", "uint256"),
    _arg("taker", "uint256"),
    _arg("token", "uint256"),
    _arg("amount", "uint256"),
    _arg("safetyDeposit", "uint256"),
    _arg("timelocks", "uint256"),
]

# IOrderMixin.Order (limit order protocol v4)
ORDER_COMPONENTS = [
    _arg("salt", "uint256"),
    _arg("maker", "uint256"),
    _arg("receiver", "uint256"),
    _arg("makerAsset", "uint256"),
    _arg("takerAsset", "uint256"),
    _arg("makingAmount", "uint256"),
    _arg("takingAmount", "uint256"),
    _arg("makerTraits", "uint256"),
]


def _immutables(name: str = "immutables") -> dict:
    return _arg(name, "tuple", IMMUTABLES_COMPONENTS)


POOL_ABI = [
    _fn("deposit", [], mutability="payable"),
    _fn("withdraw", [_arg("destination", "address"), _arg("amount", "uint256")]),
    _fn(
        "getBalance",
        [_arg("owner", "address")],
        [_arg("", "uint256")],
        mutability="view",
    ),
]

RESOLVER_ABI = [
    _fn(
        "deploySrc",
        [
            _immutables(),
            _arg("order", "tuple", ORDER_COMPONENTS),
            _arg("r", "bytes32"),
            _arg("vs", "bytes32"),
            _arg("amount", "uint256"),
            _arg("takerTraits", "uint256"),
            _arg("args", "bytes"),
        ],
        mutability="payable",
    ),
    _fn(
        "deployDst",
        [_immutables("dstImmutables"), _arg("srcCancellationTimestamp", "uint256")],
        mutability="payable",
    ),
    _fn("withdraw", [_arg("escrow", "address"), _arg("secret", "bytes32"), _immutables()]),
    _fn("cancel", [_arg("escrow", "address"), _immutables()]),
    _fn("arbitraryCalls", [_arg("targets", "address[]"), _arg("arguments", "bytes[]")]),
]

ESCROW_SRC_ABI = [
    _fn(
        "createEscrow",
        [
            _arg("orderHash", "bytes32"),
            _arg("token", "address"),
            _arg("amount", "uint256"),
            _arg("maker", "address"),
            _arg("taker", "address"),
            _arg("deadline", "uint48"),
            _arg("delay", "uint48"),
            _arg("extraData", "bytes"),
        ],
        mutability="payable",
    ),
    _fn(
        "withdrawWithRelayer",
        [
            _arg("orderHash", "bytes32"),
            _arg("secret", "bytes32"),
            _arg("relayer", "address"),
            _arg("fee", "uint256"),
            _arg("salt", "uint32"),
            _arg("v", "uint8"),
            _arg("r", "bytes32"),
            _arg("s", "bytes32"),
        ],
    ),
    _fn("withdraw", [_arg("secret", "bytes32"), _immutables()]),
    _fn("publicWithdraw", [_arg("secret", "bytes32"), _immutables()]),
    _fn("cancel", [_immutables()]),
    _fn("publicCancel", [_immutables()]),
    _fn("cancelWithSecret", [_arg("orderHash", "bytes32"), _arg("refundSecret", "bytes32")]),
]
