import pytest

from eatguard import (
    AccessTokenVerifier,
    Chain,
    Contract,
    EAT_MULTICALL_SIGNATURE,
    EATMulticall,
    IdentityRegistry,
    IssuerKey,
    PositionManager,
    Revert,
    TokenSigner,
    operation,
    selector,
)

# Far-future expiry used across the suite.
EXPIRY = 4833857428
GENESIS_TIME = 1_700_000_000


class SampleMulticall(EATMulticall):
    """Gated contract with the small set of operations the batch tests need."""

    STORAGE = ("paid", "counter")

    def __init__(self, chain, address, verifier):
        super().__init__(chain, address, verifier)
        self.paid = 0
        self.counter = 0

    @operation("pays()", payable=True)
    def pays(self):
        self.paid += self.msg.value

    @operation("bump()")
    def bump(self):
        self.counter += 1

    @operation("functionThatRevertsWithError(string)")
    def reverts_with_error(self, error):
        raise Revert(error)

    @operation("functionThatReturnsTuple(uint256,uint256)", returns=("uint256", "uint256"))
    def returns_tuple(self, a, b):
        return b, a

    @operation("functionThatCanOnlyBeMulticalled()", returns=("string",), only_self_multicall=True)
    def only_multicalled(self):
        return "did it workz?"

    @operation("returnSender()", returns=("address",))
    def return_sender(self):
        return self.msg.sender

    @operation("callOut(address,bytes)", returns=("bytes",))
    def call_out(self, target, data):
        return self.chain.get(target).call(self.address, data)


class Reenterer(Contract):
    """Forwards arbitrary calldata back to whoever called it."""

    @operation("forward(address,bytes)", returns=("bytes",))
    def forward(self, target, data):
        return self.chain.get(target).call(self.address, data)


class ReentrantReceiver(Contract):
    """Position receiver whose transfer hook replays `payload` on the sender."""

    def __init__(self, chain, address, payload=b""):
        super().__init__(chain, address)
        self.payload = payload

    @operation("onERC721Received(address,address,uint256,bytes)", returns=("bytes4",))
    def on_received(self, operator, from_address, token_id, data):
        if self.payload:
            self.chain.get(self.msg.sender).call(self.address, self.payload)
        return selector("onERC721Received(address,address,uint256,bytes)")


@pytest.fixture
def admin():
    return IssuerKey.from_private_key("0x" + "11" * 32)


@pytest.fixture
def issuer():
    return IssuerKey.from_private_key("0x" + "22" * 32)


@pytest.fixture
def user():
    return IssuerKey.from_private_key("0x" + "33" * 32)


@pytest.fixture
def other():
    return IssuerKey.from_private_key("0x" + "44" * 32)


@pytest.fixture
def chain():
    return Chain(chain_id=1, timestamp=GENESIS_TIME)


@pytest.fixture
def verifier(chain, admin, issuer):
    v = chain.deploy(AccessTokenVerifier, root_authority=admin.address)
    chain.transact(admin.address, v, "rotateIntermediate", admin.address)
    chain.transact(admin.address, v, "activateIssuers", [issuer.address])
    return v


@pytest.fixture
def signer(issuer, verifier):
    return TokenSigner(issuer, verifier.domain)


@pytest.fixture
def sample(chain, verifier):
    return chain.deploy(SampleMulticall, verifier)


@pytest.fixture
def identity(chain, admin):
    return chain.deploy(IdentityRegistry, owner=admin.address)


@pytest.fixture
def nft(chain, verifier, identity, admin):
    return chain.deploy(PositionManager, verifier, identity, owner=admin.address)


@pytest.fixture
def multicall(chain, signer):
    """Sign a token for `calls` and submit the gated batch; returns decoded results."""

    def run(contract, sender, calls, value=0, expiry=EXPIRY, token_signer=None):
        token = (token_signer or signer).sign_multicall(contract.address, sender, calls, expiry)
        sig = token.signature
        return chain.transact(
            sender, contract, EAT_MULTICALL_SIGNATURE,
            sig.v, sig.r, sig.s, expiry, calls,
            value=value,
        )

    return run
