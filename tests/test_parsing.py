import pytest

from guildvault.trading.errors import InvalidParcelError
from guildvault.trading.parcels import Coins, ItemParcel
from guildvault.utils.parsing import format_coins, parse_coin_delta, parse_id, parse_item, parse_parcel


def test_parse_id():
    assert parse_id("#12") == 12
    assert parse_id(" 7 ") == 7
    with pytest.raises(InvalidParcelError):
        parse_id("abc", "ID обмена")
    with pytest.raises(InvalidParcelError):
        parse_id("")


def test_parse_item():
    assert parse_item("sword") == ItemParcel("sword", 1)
    assert parse_item("healing-potion*4") == ItemParcel("healing-potion", 4)
    with pytest.raises(InvalidParcelError):
        parse_item("sword*0")
    with pytest.raises(InvalidParcelError):
        parse_item("меч")


def test_parse_parcel_mixed_tokens():
    parcel = parse_parcel(["5gp", "arrow*20", "3SP", "2gp"])
    assert parcel.item == ItemParcel("arrow", 20)
    assert parcel.coins == Coins(silver=3, gold=7)


def test_parse_parcel_rejects_two_items_and_empty():
    with pytest.raises(InvalidParcelError):
        parse_parcel(["sword", "shield"])
    with pytest.raises(InvalidParcelError):
        parse_parcel([])
    with pytest.raises(InvalidParcelError):
        parse_parcel(["0gp"])


def test_parse_coin_delta():
    assert parse_coin_delta(["+5gp", "-2sp", "3gp"]) == {"gold": 8, "silver": -2}
    with pytest.raises(InvalidParcelError):
        parse_coin_delta(["five gold"])


def test_format_coins():
    assert format_coins(Coins()) == "0"
    assert format_coins(Coins(copper=1, gold=2, platinum=3)) == "3pp 2gp 1cp"
