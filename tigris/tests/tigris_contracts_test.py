import asyncio
from types import SimpleNamespace

from web3 import Web3

from tigris.config.settings import TigrisConfig
from tigris.core.models import FALLBACK_QUOTE, Permit, ZERO_ADDRESS
from tigris.exchanges.tigris_contracts import (
    TigrisPositionNFT,
    TigrisTradingContract,
    encode_price_data,
    encode_trade_info,
)


class FakeEth:
    def __init__(self):
        self.sent = []

    def get_transaction_count(self, address):
        return 7

    def send_raw_transaction(self, raw):
        self.sent.append(raw)
        return b"\xfe\xed"


class FakeFunction:
    fn_name = "initiateCloseOrder"

    def __init__(self):
        self.params = None

    def build_transaction(self, params):
        self.params = params
        return dict(params, data="0x")


class FakeSigner:
    address = "0x1111111111111111111111111111111111111111"

    def sign_transaction(self, tx):
        return SimpleNamespace(raw_transaction=b"signed")


def test_send_signs_and_broadcasts_with_gas_options():
    config = TigrisConfig.from_rpc("http://localhost:8545")
    web3 = Web3(Web3.HTTPProvider(config.rpc_url))
    contract = TigrisTradingContract(web3, config.addresses.trading, config.trading_abi, FakeSigner())
    eth = FakeEth()
    contract.web3 = SimpleNamespace(eth=eth)
    fn = FakeFunction()

    tx_hash = contract._send(fn, {"gasPrice": 1_000_000_000, "gas": 10_000_000_000})

    assert tx_hash == "0xfeed"
    assert fn.params == {
        "from": FakeSigner.address,
        "nonce": 7,
        "gasPrice": 1_000_000_000,
        "gas": 10_000_000_000,
    }
    assert eth.sent == [b"signed"]


def test_send_without_gas_options_lets_web3_estimate():
    config = TigrisConfig.from_rpc("http://localhost:8545")
    web3 = Web3(Web3.HTTPProvider(config.rpc_url))
    contract = TigrisTradingContract(web3, config.addresses.trading, config.trading_abi, FakeSigner())
    contract.web3 = SimpleNamespace(eth=FakeEth())
    fn = FakeFunction()

    contract._send(fn, {})

    assert "gas" not in fn.params
    assert "gasPrice" not in fn.params


def test_position_asset_is_third_trade_field():
    config = TigrisConfig.from_rpc("http://localhost:8545")
    nft = TigrisPositionNFT.from_config(config)
    trade = (10**18, 5 * 10**18, "3", True, 0, 0, 0, 0, FakeSigner.address, 42, FakeSigner.address, 0)
    nft.contract = SimpleNamespace(
        functions=SimpleNamespace(trades=lambda position_id: SimpleNamespace(call=lambda: trade))
    )

    assert asyncio.run(nft.resolve_asset_for_position(42)) == 3


# ---------------------------------------------------------------------------
# Real ABI argument building (no network: _send is replaced)
# ---------------------------------------------------------------------------

STRING_QUOTE = (
    "0x" + "ab" * 20,
    False,
    "3",
    "42000000000000000000000",
    "0",
    "1700000000",
    "0x" + "11" * 65,
)


def make_real_contract(monkeypatch):
    config = TigrisConfig.from_rpc("http://localhost:8545")
    web3 = Web3(Web3.HTTPProvider(config.rpc_url))
    contract = TigrisTradingContract(web3, config.addresses.trading, config.trading_abi, FakeSigner())
    built = []

    def capture(fn, gas_options):
        built.append((fn, gas_options))
        return "0xfeed"

    monkeypatch.setattr(contract, "_send", capture)
    return config, contract, built


def trade_info_for(config, referrer=ZERO_ADDRESS):
    return (10**20, config.addresses.usdt, config.addresses.vault, 10**19, 3, True, 0, 0, referrer)


def test_fallback_quote_builds_create_market_order(monkeypatch):
    config, contract, built = make_real_contract(monkeypatch)

    tx_hash = asyncio.run(contract.create_market_order(
        trade_info_for(config), FALLBACK_QUOTE.as_tuple(), Permit().as_tuple(), FakeSigner.address
    ))

    assert tx_hash == "0xfeed"
    fn, gas_options = built[0]
    assert fn.fn_name == "createMarketOrder"
    assert fn.args[1] == (ZERO_ADDRESS, False, 0, 0, 0, 0, b"\x00" * 65)
    assert gas_options == {}


def test_string_quote_builds_initiate_close_order(monkeypatch):
    config, contract, built = make_real_contract(monkeypatch)

    asyncio.run(contract.initiate_close_order(
        "42",
        10_000_000_000,
        STRING_QUOTE,
        config.addresses.vault.lower(),
        config.addresses.usdt,
        FakeSigner.address,
        {"gasPrice": 1_000_000_000, "gas": 10_000_000_000},
    ))

    fn, gas_options = built[0]
    assert fn.fn_name == "initiateCloseOrder"
    assert fn.args[0] == 42
    assert fn.args[2][2:6] == (3, 42000000000000000000000, 0, 1700000000)
    assert fn.args[3] == config.addresses.vault
    assert gas_options["gas"] == 10_000_000_000


def test_lowercase_addresses_are_checksummed():
    config = TigrisConfig.from_rpc("http://localhost:8545")
    info = encode_trade_info(trade_info_for(config, referrer="0x" + "cd" * 20))
    quote = encode_price_data(STRING_QUOTE)

    assert info[8] == Web3.to_checksum_address("0x" + "cd" * 20)
    assert quote[0] == Web3.to_checksum_address("0x" + "ab" * 20)
    assert quote[6] == b"\x11" * 65
