"""
Tests for contract interfaces, the packaged tables and bound contracts.
"""
from unittest.mock import patch

import pytest

from ethbind.abi import encode_tuple
from ethbind.contract import BoundContract, ContractInterface
from ethbind.contracts import available_interfaces, load_interface
from ethbind.events import DecodedEvent
from ethbind.exceptions import EncodingError, RevertError
from ethbind.invoker import Invoker
from ethbind.subscriptions import LogSubscription

from conftest import (
    ALICE, BOB, TOKEN_ADDRESS, TRANSFER_TOPIC, address_topic, make_receipt, make_transfer_log
)

OVERLOADED_ABI = [
    {"type": "function", "name": "safeTransferFrom", "stateMutability": "nonpayable", "outputs": [],
     "inputs": [{"name": "from", "type": "address"}, {"name": "to", "type": "address"},
                {"name": "id", "type": "uint256"}]},
    {"type": "function", "name": "safeTransferFrom", "stateMutability": "nonpayable", "outputs": [],
     "inputs": [{"name": "from", "type": "address"}, {"name": "to", "type": "address"},
                {"name": "id", "type": "uint256"}, {"name": "data", "type": "bytes"}]},
    {"type": "error", "name": "NotOwner", "inputs": []},
]


@pytest.fixture
def invoker(transport, signer, config):
    with Invoker(transport, signer=signer, config=config) as inv:
        yield inv


@pytest.fixture
def token(invoker):
    return BoundContract(TOKEN_ADDRESS, load_interface("erc20"), invoker)


class TestPackagedInterfaces:
    """Tests for the packaged contract tables."""

    def test_available(self):
        names = available_interfaces()
        assert "erc20" in names
        assert "relay_registry" in names
        assert len(names) == 14

    @pytest.mark.parametrize("name", [
        "basic_coin", "basic_coin_manager", "erc20", "erc20_burnable", "erc20_mintable", "failer", "owned_upgradeability_proxy", "relay",
        "relay_registry", "sora_token", "test_greeter_v0", "test_greeter_v1", "transfer_ethereum",
        "upgradeability_proxy",
    ])
    def test_every_table_loads(self, name):
        interface = load_interface(name)
        assert interface.name
        assert interface.abi

    def test_erc20_table(self):
        erc20 = load_interface("erc20")
        assert erc20.function("transfer").canonical == "transfer(address,uint256)"
        assert erc20.function("transfer").selector.hex() == "a9059cbb"
        assert erc20.event("Transfer").topic_hex == TRANSFER_TOPIC
        assert erc20.event_names == ["Approval", "Transfer"]

    def test_relay_registry_constructor(self):
        registry = load_interface("relay_registry")
        assert "isWhiteListed" in registry.function_names
        assert registry.constructor_inputs == ()

    def test_failer_transfer(self):
        failer = load_interface("failer")
        assert failer.function_names == ["transfer"]
        assert failer.function("transfer").selector.hex() == "a9059cbb"
        assert failer.bytecode.startswith(bytes.fromhex("6080604052"))
        assert len(failer.bytecode) == 305

    @pytest.mark.parametrize("name", ["erc20", "relay", "relay_registry"])
    def test_interfaces_without_bytecode(self, name):
        assert load_interface(name).bytecode is None

    def test_erc20_variants(self):
        mintable = load_interface("erc20_mintable")
        burnable = load_interface("erc20_burnable")
        assert "mint" in mintable.function_names
        assert "burn" not in mintable.function_names
        assert {"burn", "burnFrom"} <= set(burnable.function_names)
        assert "mint" not in burnable.function_names
        assert mintable.bytecode != burnable.bytecode

    def test_explicit_bytecode_overrides_packaged(self):
        assert load_interface("failer", bytecode="0x6080").bytecode == b"\x60\x80"

    def test_unknown_table(self):
        with pytest.raises(ValueError) as exc_info:
            load_interface("missing")
        assert "erc20" in str(exc_info.value)


class TestContractInterface:
    """Tests for lookups on a ContractInterface."""

    def test_overloaded_name_needs_signature(self):
        interface = ContractInterface.from_abi(OVERLOADED_ABI, name="Collectible")

        with pytest.raises(ValueError) as exc_info:
            interface.function("safeTransferFrom")
        assert "safeTransferFrom(address,address,uint256,bytes)" in str(exc_info.value)

        f = interface.function("safeTransferFrom(address,address,uint256)")
        assert len(f.inputs) == 3

    def test_unknown_function(self):
        with pytest.raises(ValueError):
            load_interface("erc20").function("balanceOfAt")
        with pytest.raises(ValueError):
            load_interface("erc20").event("Paused")

    def test_with_bytecode(self):
        interface = load_interface("test_greeter_v0").with_bytecode("0x6080")
        assert interface.bytecode == b"\x60\x80"
        assert interface == load_interface("test_greeter_v0", bytecode=b"\x60\x80")

    def test_call_decoder_identifies_calls(self, token):
        decoded = token.interface.call_decoder().decode_input(token.encode("transfer", BOB, 5).data)
        assert decoded.name == "transfer"
        assert decoded.as_dict() == {"to": BOB, "value": 5}

    def test_event_decoder(self):
        decoder = load_interface("erc20").event_decoder()
        event = decoder.decode_log(make_transfer_log(value=9))
        assert event.event == "Transfer"
        assert event["value"] == 9


class TestBoundContract:
    """Tests for BoundContract against a mocked transport."""

    def test_invalid_address(self, invoker):
        with pytest.raises(ValueError):
            BoundContract("0x1234", load_interface("erc20"), invoker)

    def test_call_single_output(self, token, transport):
        transport.call.return_value = encode_tuple(["uint256"], [500])
        assert token.call("balanceOf", ALICE) == 500

    def test_call_multiple_outputs(self, invoker, transport):
        manager = BoundContract(TOKEN_ADDRESS, load_interface("basic_coin_manager"), invoker)
        transport.call.return_value = encode_tuple(["address", "address", "address"], [ALICE, BOB, TOKEN_ADDRESS])
        assert manager.call("get", 0) == [ALICE, BOB, TOKEN_ADDRESS]

    def test_call_bad_arguments(self, token, transport):
        with pytest.raises(EncodingError):
            token.call("balanceOf", "not an address")
        transport.call.assert_not_called()

    def test_transact_and_decode_events(self, token, transport):
        transport.get_receipt.return_value = make_receipt(logs=[
            make_transfer_log(ALICE, BOB, 5),
            make_transfer_log(ALICE, BOB, 6, address=BOB),
        ])

        receipt = token.transact("transfer", BOB, 5)
        events = token.decode_events("Transfer", receipt)

        assert receipt.succeeded
        assert [e["value"] for e in events] == [5]
        assert isinstance(events[0], DecodedEvent)

    def test_transact_revert(self, token, transport):
        transport.get_receipt.return_value = make_receipt(status=0)
        transport.call.side_effect = RevertError("reverted", reason="ERC20: transfer amount exceeds balance")

        with pytest.raises(RevertError) as exc_info:
            token.transact("transfer", BOB, 10 ** 30)
        assert exc_info.value.reason == "ERC20: transfer amount exceeds balance"

    def test_submit_returns_pending(self, token, transport):
        pending = token.submit("approve", BOB, 1)
        assert pending.tx_hash == transport.send_raw_transaction.return_value

    def test_get_logs_filters_on_indexed_values(self, token, transport):
        transport.get_logs.return_value = [make_transfer_log(ALICE, BOB, 3)]

        events = list(token.get_logs("Transfer", from_block=0, to_block=10, to=BOB))

        params = transport.get_logs.call_args[0][0]
        assert params["address"] == TOKEN_ADDRESS
        assert params["topics"] == [TRANSFER_TOPIC, None, address_topic(BOB)]
        assert events[0].args == {"from": ALICE, "to": BOB, "value": 3}

    def test_subscribe_is_not_started(self, token, transport):
        sub = token.subscribe("Transfer", poll_interval=0.01, **{"from": ALICE})
        assert isinstance(sub, LogSubscription)
        assert not sub.running
        transport.new_filter.assert_not_called()

    def test_deploy_without_bytecode(self, invoker):
        with pytest.raises(ValueError):
            BoundContract.deploy(load_interface("relay"), invoker, ALICE)

    def test_deploy(self, invoker, transport):
        transport.get_receipt.return_value = make_receipt(contract_address=BOB)
        interface = load_interface("test_greeter_v0", bytecode="0x6080")

        greeter = BoundContract.deploy(interface, invoker, "hello")

        assert greeter.address == BOB
        assert greeter.interface is interface

    def test_deploy_packaged_bytecode(self, invoker, transport):
        transport.get_receipt.return_value = make_receipt(contract_address=BOB)
        interface = load_interface("test_greeter_v0")

        with patch.object(invoker, "send_transaction", wraps=invoker.send_transaction) as send:
            greeter = BoundContract.deploy(interface, invoker, "hello")

        creation = send.call_args[0][1]
        assert creation.startswith(interface.bytecode)
        assert creation[len(interface.bytecode):] == encode_tuple(["string"], ["hello"])
        assert greeter.address == BOB
