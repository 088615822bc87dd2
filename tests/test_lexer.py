from lexer import (
    DECREMENT,
    INCREMENT,
    INPUT,
    LOOP_CLOSE,
    LOOP_OPEN,
    MOVE_LEFT,
    MOVE_RIGHT,
    OUTPUT,
    Lexer,
    Token,
    tokenize,
)


def test_every_instruction_character_maps_to_its_token():
    tokens = tokenize("><+-.,[]")
    assert [t.type for t in tokens] == [
        MOVE_RIGHT,
        MOVE_LEFT,
        INCREMENT,
        DECREMENT,
        OUTPUT,
        INPUT,
        LOOP_OPEN,
        LOOP_CLOSE,
    ]


def test_comment_characters_are_dropped():
    tokens = Lexer("set cell 0 to 2: ++ then print it .\n# done").tokenize()
    assert tokens == [Token(INCREMENT, "+"), Token(INCREMENT, "+"), Token(OUTPUT, ".")]


def test_source_without_instructions_yields_nothing():
    assert tokenize("") == []
    assert tokenize("hello world\t\r\n") == []


def test_token_keeps_source_character():
    assert [t.value for t in tokenize("a[b]c")] == ["[", "]"]
