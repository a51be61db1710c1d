import json

from eth_account import Account

from utils.wallet_parser import (
    load_wallet_records,
    parse_delimited_text,
    parse_json_document,
    parse_json_lines,
    parse_wallets,
)

KEY1 = "0x" + "1" * 64
KEY2 = "0x" + "2" * 64
ADDR1 = "0x" + "a" * 40
ADDR2 = "0x" + "b" * 40


def test_json_document_pairs_in_either_order():
    text = json.dumps([[ADDR1, KEY1], [KEY2, ADDR2], ["junk"]])
    wallets = parse_json_document(text)

    assert [(w.public_address, w.private_key) for w in wallets] == [(ADDR1, KEY1), (ADDR2, KEY2)]


def test_json_document_objects():
    text = json.dumps([{"publicKey": ADDR1, "privateKey": KEY1}, {"address": ADDR2, "private_key": KEY2}])
    wallets = parse_json_document(text)
    assert [w.public_address for w in wallets] == [ADDR1, ADDR2]


def test_json_document_rejects_non_json_and_non_list():
    assert parse_json_document("not json") is None
    assert parse_json_document('{"a": 1}') is None


def test_json_lines():
    text = f'["{ADDR1}", "{KEY1}"]\n\n["{KEY2}", "{ADDR2}"]\n'
    wallets = parse_json_lines(text)
    assert [(w.public_address, w.private_key) for w in wallets] == [(ADDR1, KEY1), (ADDR2, KEY2)]


def test_json_lines_gives_up_on_plain_text():
    assert parse_json_lines(f"{ADDR1} - {KEY1}") is None


def test_delimited_text_pairs_and_derives():
    text = f"{ADDR1} - {KEY1}\n{KEY2}\nnothing useful here\n"
    wallets = parse_delimited_text(text)

    assert wallets[0].public_address == ADDR1
    assert wallets[0].private_key == KEY1
    assert wallets[1].public_address == Account.from_key(KEY2).address
    assert len(wallets) == 2


def test_delimited_text_without_any_key_is_not_a_match():
    assert parse_delimited_text("hello\nworld") is None


def test_parse_wallets_priority_order():
    doc = json.dumps([[ADDR1, KEY1]])
    assert parse_wallets(doc)[0].public_address == ADDR1
    assert parse_wallets(f"{ADDR2} - {KEY2}")[0].public_address == ADDR2
    assert parse_wallets("") == []


def test_private_key_hidden_from_repr():
    wallet = parse_wallets(json.dumps([[ADDR1, KEY1]]))[0]
    assert KEY1 not in repr(wallet)


def test_load_wallet_records_slices_range(tmp_path):
    path = tmp_path / "wallets.json"
    path.write_text(json.dumps([[ADDR1, KEY1], [ADDR2, KEY2], [ADDR1, KEY2]]))

    wallets = load_wallet_records(str(path), 1, 3)

    assert [w.private_key for w in wallets] == [KEY2, KEY2]
    assert len(load_wallet_records(str(path))) == 3
