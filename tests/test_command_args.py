from okxfi.services.command_args import build_args_string, parse_command_args


def test_parses_bare_and_quoted_values() -> None:
    args = parse_command_args("chainIndex=501 label=\"my wallet\" note='a b c' amount=10.5")

    assert args == {"chainIndex": "501", "label": "my wallet", "note": "a b c", "amount": "10.5"}


def test_empty_input_yields_empty_mapping() -> None:
    assert parse_command_args("") == {}
    assert parse_command_args(None) == {}
    assert parse_command_args('empty=""') == {"empty": ""}


def test_malformed_fragments_are_skipped() -> None:
    args = parse_command_args("stray chainIndex=1 broken=\"unterminated txHash=0xabc")

    assert args["chainIndex"] == "1"
    assert args["txHash"] == "0xabc"
    assert "stray" not in args


def test_last_occurrence_wins() -> None:
    assert parse_command_args("chainIndex=1 chainIndex=501") == {"chainIndex": "501"}


def test_comma_lists_stay_one_value() -> None:
    args = parse_command_args("chains=1,501 tokenContractAddresses=501:NATIVE,1:0xabc")

    assert args == {"chains": "1,501", "tokenContractAddresses": "501:NATIVE,1:0xabc"}


def test_build_args_string_quotes_whitespace_and_drops_none() -> None:
    text = build_args_string({"chainIndex": "501", "label": "two words", "skip": None, "quote": 'say "hi"'})

    assert text == "chainIndex=501 label=\"two words\" quote='say \"hi\"'"
    assert parse_command_args(text) == {"chainIndex": "501", "label": "two words", "quote": 'say "hi"'}
