import pytest

from lexer import InvalidSyntax, Lexer, SourceCursor, UnterminatedBlock
from parser import (
    BlockReader,
    CallStatement,
    ClearStatement,
    DebugStatement,
    FuncDef,
    IfStatement,
    IncrementStatement,
    PrintStatement,
    SetStatement,
    WhileStatement,
    is_else_clause,
    parse_else_clause,
    parse_statement,
)


def _line(text: str):
    return Lexer(text, "test.bb").lines()[0]


def _cursor(text: str) -> SourceCursor:
    return SourceCursor(Lexer(text, "test.bb").lines())


def test_simple_statements_are_classified():
    assert parse_statement(_line("clear X;")) == ClearStatement(location=_line("clear X;").location, name="X")
    incr = parse_statement(_line("incr X;"))
    assert isinstance(incr, IncrementStatement) and incr.delta == 1
    decr = parse_statement(_line("  decr X; going down"))
    assert isinstance(decr, IncrementStatement) and decr.delta == -1 and decr.name == "X"
    debug = parse_statement(_line("debug X;"))
    assert isinstance(debug, DebugStatement) and debug.name == "X"


def test_print_and_set_keep_format_text():
    stmt = parse_statement(_line("print sum: {a+b} ;"))
    assert isinstance(stmt, PrintStatement)
    assert stmt.format == "sum: {a+b} "
    set_stmt = parse_statement(_line("set greeting hello {name};"))
    assert isinstance(set_stmt, SetStatement)
    assert (set_stmt.name, set_stmt.format) == ("greeting", "hello {name}")
    empty = parse_statement(_line("set blank;"))
    assert (empty.name, empty.format) == ("blank", "")


def test_block_headers():
    loop = parse_statement(_line("while X not 0 do;"))
    assert isinstance(loop, WhileStatement) and loop.predicate == "X not 0"
    branch = parse_statement(_line("if X gt 10 do; big one"))
    assert isinstance(branch, IfStatement) and branch.predicate == "X gt 10"
    fn = parse_statement(_line("function greet do;"))
    assert isinstance(fn, FuncDef) and fn.name == "greet"


def test_other_lines_become_calls():
    call = parse_statement(_line("greet world  there;"))
    assert isinstance(call, CallStatement)
    assert call.name == "greet"
    assert call.args == ["world", "there"]


@pytest.mark.parametrize(
    "text",
    [
        "clear ;",
        "incr  ;",
        "debug ;",
        "while X not 0;",
        "if X gt 0;",
        "function do;",
        "function two names do;",
        "end;",
        "else;",
        "else if X gt 0 do;",
    ],
)
def test_malformed_statements_are_invalid_syntax(text):
    with pytest.raises(InvalidSyntax) as info:
        parse_statement(_line(text))
    assert info.value.location.line == 1


def test_else_clauses():
    assert is_else_clause("else")
    assert is_else_clause("else do")
    assert is_else_clause("else if X gt 0 do")
    assert not is_else_clause("elsewhere")
    assert not is_else_clause("else if")
    assert parse_else_clause(_line("else;")).predicate is None
    assert parse_else_clause(_line("else if X gt 0 do;")).predicate == "X gt 0"


def test_reader_consumes_own_end_and_tracks_nesting():
    cursor = _cursor(
        "while X not 0 do;\n"
        "  decr X;\n"
        "  while Y not 0 do;\n"
        "    decr Y;\n"
        "  end;\n"
        "end;\n"
        "print after;\n"
    )
    header = cursor.advance()
    block = BlockReader(cursor).read("while", header.location)
    assert [line.text for line in block.lines] == ["decr X", "while Y not 0 do", "decr Y", "end"]
    assert block.terminator.location.line == 6
    assert not block.stopped_at_else
    assert cursor.peek().text == "print after"


def test_reader_stops_before_else_without_consuming_it():
    cursor = _cursor(
        "if X gt 0 do;\n"
        "  if Y gt 0 do;\n"
        "    print inner;\n"
        "  else;\n"
        "    print inner else;\n"
        "  end;\n"
        "else if X lt 0 do;\n"
        "  print negative;\n"
        "end;\n"
    )
    header = cursor.advance()
    block = BlockReader(cursor).read("if", header.location, stop_at_else=True)
    assert len(block.lines) == 5
    assert block.stopped_at_else
    assert cursor.peek().text == "else if X lt 0 do"


def test_reader_reports_unterminated_block_at_header():
    cursor = _cursor("clear X;\nwhile X not 0 do;\n  decr X;\n")
    cursor.advance()
    header = cursor.advance()
    with pytest.raises(UnterminatedBlock) as info:
        BlockReader(cursor).read("while", header.location)
    assert info.value.location.line == 2
    assert "end of file" in info.value.message
