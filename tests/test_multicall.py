"""
Gated batch executor tests.
"""

import pytest
from eth_abi import encode

from eatguard import (
    AccessDenied,
    EAT_MULTICALL_SIGNATURE,
    LEGACY_MULTICALL_SIGNATURE,
    Revert,
    TokenSigner,
)
from eatguard.positions import GATED_TRANSFER

from conftest import EXPIRY, GENESIS_TIME, Reenterer, SampleMulticall


def call(name, *args):
    return SampleMulticall.encode_call(name, *args)


class TestGatedMulticall:

    def test_single_call_returns_data(self, sample, user, multicall):
        results = multicall(sample, user.address, [call("functionThatReturnsTuple", 1, 2)])
        assert len(results) == 1
        assert SampleMulticall.decode_result("functionThatReturnsTuple", results[0]) == (2, 1)

    def test_results_in_order(self, sample, user, multicall):
        results = multicall(sample, user.address, [
            call("functionThatReturnsTuple", 1, 2),
            call("returnSender"),
            call("functionThatReturnsTuple", 5, 6),
        ])
        decoded = [
            SampleMulticall.decode_result("functionThatReturnsTuple", results[0]),
            SampleMulticall.decode_result("returnSender", results[1]),
            SampleMulticall.decode_result("functionThatReturnsTuple", results[2]),
        ]
        assert decoded == [(2, 1), user.address, (6, 5)]

    def test_sender_is_original_caller(self, sample, user, multicall):
        results = multicall(sample, user.address, [call("returnSender")])
        assert SampleMulticall.decode_result("returnSender", results[0]) == user.address

    def test_sub_call_revert_propagates_verbatim(self, sample, user, multicall):
        with pytest.raises(Revert) as exc:
            multicall(sample, user.address, [call("functionThatRevertsWithError", "abcdef")])
        assert exc.value.reason == "abcdef"
        assert not isinstance(exc.value, AccessDenied)

    def test_batch_is_atomic(self, sample, user, multicall):
        with pytest.raises(Revert, match="boom"):
            multicall(sample, user.address, [
                call("bump"),
                call("bump"),
                call("functionThatRevertsWithError", "boom"),
            ])
        assert sample.counter == 0

    def test_successful_batch_commits(self, sample, user, multicall):
        multicall(sample, user.address, [call("bump"), call("bump")])
        assert sample.counter == 2

    def test_empty_batch(self, sample, user, multicall):
        assert multicall(sample, user.address, []) == []

    def test_lock_released_after_failure(self, sample, user, multicall):
        with pytest.raises(Revert):
            multicall(sample, user.address, [call("functionThatRevertsWithError", "x")])
        assert not sample.call_flow.active
        multicall(sample, user.address, [call("bump")])
        assert sample.counter == 1

    def test_malformed_sub_call(self, sample, user, multicall):
        with pytest.raises(Revert, match="function selector was not recognized"):
            multicall(sample, user.address, [b"\xde\xad"])
        with pytest.raises(Revert, match="invalid calldata"):
            multicall(sample, user.address, [call("functionThatReturnsTuple", 1, 2)[:20]])

    def test_duplicate_submission_is_accepted(self, chain, sample, user, signer):
        calls = [call("bump")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        sig = token.signature
        for _ in range(2):
            chain.transact(user.address, sample, EAT_MULTICALL_SIGNATURE, sig.v, sig.r, sig.s, EXPIRY, calls)
        assert sample.counter == 2


class TestMulticallValue:

    def test_pay_once(self, sample, user, multicall):
        multicall(sample, user.address, [call("pays")], value=3)
        assert sample.paid == 3
        assert sample.balance == 3

    def test_full_value_visible_to_every_sub_call(self, sample, user, multicall):
        multicall(sample, user.address, [call("pays"), call("pays")], value=3)
        assert sample.paid == 6
        assert sample.balance == 3

    def test_value_to_non_payable_sub_call(self, sample, user, multicall):
        with pytest.raises(Revert, match="non-payable"):
            multicall(sample, user.address, [call("pays"), call("bump")], value=3)
        assert sample.paid == 0
        assert sample.balance == 0


class TestMulticallAuthorization:

    def _submit(self, chain, sample, sender, token, calls, expiry=EXPIRY):
        sig = token.signature
        return chain.transact(sender, sample, EAT_MULTICALL_SIGNATURE, sig.v, sig.r, sig.s, expiry, calls)

    def test_untrusted_signer(self, chain, verifier, sample, user):
        calls = [call("bump")]
        token = TokenSigner(user, verifier.domain).sign_multicall(sample.address, user.address, calls, EXPIRY)
        with pytest.raises(AccessDenied, match="AccessToken: verification failure"):
            self._submit(chain, sample, user.address, token, calls)
        assert sample.counter == 0

    def test_expired(self, chain, sample, user, signer):
        calls = [call("bump")]
        token = signer.sign_multicall(sample.address, user.address, calls, GENESIS_TIME)
        with pytest.raises(AccessDenied, match="AccessToken: has expired"):
            self._submit(chain, sample, user.address, token, calls, expiry=GENESIS_TIME)

    def test_expires_as_chain_time_passes(self, chain, sample, user, signer):
        calls = [call("bump")]
        expiry = GENESIS_TIME + 60
        token = signer.sign_multicall(sample.address, user.address, calls, expiry)
        self._submit(chain, sample, user.address, token, calls, expiry=expiry)
        chain.advance_time(60)
        with pytest.raises(AccessDenied, match="AccessToken: has expired"):
            self._submit(chain, sample, user.address, token, calls, expiry=expiry)
        assert sample.counter == 1

    def test_token_is_bound_to_caller(self, chain, sample, user, other, signer):
        calls = [call("bump")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        with pytest.raises(AccessDenied, match="AccessToken: verification failure"):
            self._submit(chain, sample, other.address, token, calls)

    def test_token_is_bound_to_calls(self, chain, sample, user, signer):
        token = signer.sign_multicall(sample.address, user.address, [call("bump")], EXPIRY)
        with pytest.raises(AccessDenied):
            self._submit(chain, sample, user.address, token, [call("bump"), call("bump")])
        assert sample.counter == 0

    def test_token_is_bound_to_target(self, chain, verifier, sample, user, signer):
        second = chain.deploy(SampleMulticall, verifier)
        calls = [call("bump")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        with pytest.raises(AccessDenied):
            self._submit(chain, second, user.address, token, calls)

    def test_token_is_bound_to_expiry(self, chain, sample, user, signer):
        calls = [call("bump")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        with pytest.raises(AccessDenied, match="AccessToken: verification failure"):
            self._submit(chain, sample, user.address, token, calls, expiry=EXPIRY + 1)

    def test_deactivated_issuer(self, chain, verifier, sample, user, admin, issuer, signer):
        calls = [call("bump")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        chain.transact(admin.address, verifier, "deactivateIssuers", [issuer.address])
        with pytest.raises(AccessDenied, match="AccessToken: verification failure"):
            self._submit(chain, sample, user.address, token, calls)

    def test_malformed_v(self, chain, sample, user, signer):
        calls = [call("bump")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        sig = token.signature
        with pytest.raises(AccessDenied, match="AccessToken: verification failure"):
            chain.transact(user.address, sample, EAT_MULTICALL_SIGNATURE, sig.v + 2, sig.r, sig.s, EXPIRY, calls)


class TestCallFlowGuards:

    def test_legacy_multicall_disabled(self, chain, sample, user):
        for calls in ([], [call("bump")]):
            with pytest.raises(Revert, match="non-EAT multicall disallowed"):
                chain.transact(user.address, sample, LEGACY_MULTICALL_SIGNATURE, calls)
        assert sample.counter == 0

    def test_legacy_multicall_disabled_inside_batch(self, sample, user, multicall):
        inner = SampleMulticall.encode_call(LEGACY_MULTICALL_SIGNATURE, [call("bump")])
        with pytest.raises(Revert, match="non-EAT multicall disallowed"):
            multicall(sample, user.address, [inner])

    def test_self_only_direct_call_fails(self, chain, sample, user):
        with pytest.raises(Revert, match="only callable by self multicall"):
            chain.transact(user.address, sample, "functionThatCanOnlyBeMulticalled")

    def test_self_only_inside_batch_succeeds(self, sample, user, multicall):
        results = multicall(sample, user.address, [call("functionThatCanOnlyBeMulticalled")])
        assert SampleMulticall.decode_result("functionThatCanOnlyBeMulticalled", results[0]) == "did it workz?"

    def test_nested_batch_is_locked(self, sample, user, signer, multicall):
        inner_calls = [call("bump")]
        inner_token = signer.sign_multicall(sample.address, user.address, inner_calls, EXPIRY)
        sig = inner_token.signature
        nested = SampleMulticall.encode_call(EAT_MULTICALL_SIGNATURE, sig.v, sig.r, sig.s, EXPIRY, inner_calls)

        with pytest.raises(Revert, match="call-flow locked") as exc:
            multicall(sample, user.address, [call("bump"), nested])
        assert not isinstance(exc.value, AccessDenied)
        assert sample.counter == 0
        assert not sample.call_flow.active

    def test_reentrant_call_cannot_reach_self_only(self, chain, sample, user, multicall):
        reenterer = chain.deploy(Reenterer)
        bounce = Reenterer.encode_call("forward", sample.address, call("functionThatCanOnlyBeMulticalled"))
        with pytest.raises(Revert, match="only callable by self multicall"):
            multicall(sample, user.address, [call("bump"), call("callOut", reenterer.address, bounce)])
        assert sample.counter == 0
        assert not sample.call_flow.active

    def test_reentrant_call_reaches_open_operations(self, chain, sample, user, multicall):
        reenterer = chain.deploy(Reenterer)
        bounce = Reenterer.encode_call("forward", sample.address, call("returnSender"))
        results = multicall(sample, user.address, [call("callOut", reenterer.address, bounce)])
        forwarded = SampleMulticall.decode_result("callOut", results[0])
        inner = Reenterer.decode_result("forward", forwarded)
        assert SampleMulticall.decode_result("returnSender", inner) == reenterer.address

    def test_unknown_selector(self, chain, sample, user):
        with pytest.raises(Revert, match="function selector was not recognized"):
            chain.send(user.address, sample.address, b"\x00\x00\x00\x00")

    def test_value_to_legacy_multicall(self, chain, sample, user):
        with pytest.raises(Revert, match="non-EAT multicall disallowed"):
            chain.transact(user.address, sample, LEGACY_MULTICALL_SIGNATURE, [], value=1)
        assert sample.balance == 0


class TestEndToEnd:

    def test_pay_with_value_three(self, chain, sample, user, signer):
        calls = [call("pays")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        sig = token.signature
        chain.transact(user.address, sample, EAT_MULTICALL_SIGNATURE, sig.v, sig.r, sig.s, EXPIRY, calls, value=3)
        assert sample.paid == 3

    def test_pay_twice_with_value_three(self, chain, sample, user, signer):
        calls = [call("pays"), call("pays")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        sig = token.signature
        chain.transact(user.address, sample, EAT_MULTICALL_SIGNATURE, sig.v, sig.r, sig.s, EXPIRY, calls, value=3)
        assert sample.paid == 6

    def test_parameters_are_calldata_tail(self, sample, user, signer):
        calls = [call("pays"), call("bump")]
        token = signer.sign_multicall(sample.address, user.address, calls, EXPIRY)
        sig = token.signature
        calldata = SampleMulticall.encode_call(EAT_MULTICALL_SIGNATURE, sig.v, sig.r, sig.s, EXPIRY, calls)
        assert token.function_call.parameters == calldata[4 + 4 * 32:]
        assert token.function_call.parameters[:32] == (0xa0).to_bytes(32, "big")
        assert token.function_call.parameters != encode(["bytes[]"], [calls])
        assert token.function_call.target == sample.address
        assert token.function_call.caller == user.address

    def test_gated_transfer_parameters_are_calldata_tail(self, nft, user, other, signer):
        token = signer.sign_call(GATED_TRANSFER, nft.address, user.address, [user.address, other.address, 7], EXPIRY)
        sig = token.signature
        calldata = nft.encode_call(GATED_TRANSFER, sig.v, sig.r, sig.s, EXPIRY, user.address, other.address, 7)
        assert token.function_call.parameters == calldata[4 + 4 * 32:]
