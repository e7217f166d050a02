import io

import pytest

from osun.osun_datatypes import Context, EvalError, Expr
from osun.osun_interpreter import Evaluator, current_evaluator
from osun.osun_lexer import tokenize
from osun.osun_parser import parse
from osun.osun_symbols import SymbolTable


def expr(text):
    """Build an Expr the way the parser does, from a single-line source."""
    tokens = [t for t in tokenize(text) if t.kind not in ('NEWLINE', 'EOF')]
    return Expr(tokens, text, 1)


@pytest.fixture
def symbols():
    return SymbolTable()


@pytest.fixture
def evaluator(symbols):
    """Returns a new Evaluator for each test."""
    return Evaluator(symbols)


@pytest.fixture
def context():
    ctx = Context()
    ctx['x'] = 10.0
    ctx['who'] = "world"
    ctx['flag'] = True
    ctx['zero'] = 0.0
    ctx['empty'] = ""
    return ctx


def run(evaluator, source, context=None):
    context = context if context is not None else Context()
    value = evaluator.run(parse(source), context)
    return value, context


def stdout(evaluator):
    return [e['message'] for e in evaluator.side_effects if e['topics'] == ['stdout']]


def diagnostics(evaluator):
    return [e['message'] for e in evaluator.side_effects if e['topics'] == ['diagnostic']]

# =================================================================
# Expressions
# =================================================================

@pytest.mark.parametrize("text, expected", [
    ('"hi"', "hi"),
    ('""', ""),
    ('4.0', 4.0),
    ('-2.5', -2.5),
    ('1e3', 1000.0),
    ('"h" + "i"', "hi"),
    ('1 + 1', "11"),
    ('"a" + 1.5', "a1.5"),
    ('"n=" + 4.0', "n=4"),
    ('"hello " + who', "hello world"),
    ('"a" +', "a"),
    ('hello world', "hello world"),
    ('"quoted" tail', '"quoted" tail'),
])
def test_eval_expr(evaluator, context, text, expected):
    assert evaluator.eval_expr(expr(text), context) == expected


def test_empty_expression_is_nil(evaluator, context):
    assert evaluator.eval_expr(Expr([], "", 1), context) is None


def test_bound_variable_wins_over_number(evaluator, context):
    context['10'] = "ten"
    assert evaluator.eval_expr(expr('10'), context) == "ten"


def test_bound_variable_keeps_its_type(evaluator, context):
    assert evaluator.eval_expr(expr('x'), context) == 10.0
    assert evaluator.eval_expr(expr('flag'), context) is True


def test_concatenation_renders_each_operand(evaluator, context):
    assert evaluator.eval_expr(expr('x + flag'), context) == "10true"
    context['nothing'] = None
    assert evaluator.eval_expr(expr('"v=" + nothing'), context) == "v=nil"


def test_strict_names_rejects_unbound_text(symbols, context):
    strict = Evaluator(symbols, strict_names=True)
    with pytest.raises(EvalError, match="unresolved name: nobody"):
        strict.eval_expr(expr('nobody'), context)
    # Numbers, literals and bound names are unaffected
    assert strict.eval_expr(expr('3'), context) == 3.0
    assert strict.eval_expr(expr('"s"'), context) == "s"
    assert strict.eval_expr(expr('who'), context) == "world"

# =================================================================
# Conditions
# =================================================================

@pytest.mark.parametrize("text, expected", [
    ('x >= 10', True),
    ('x > 10', False),
    ('x <= 10', True),
    ('x < 11', True),
    ('x == 10.0', True),
    ('x != 10', False),
    ('"42" == 42', True),
    ('"abc" == "abc"', True),
    ('who != "moon"', True),
    ('who == "world"', True),
    ('"abc" < "abd"', False),
    ('"abc" > "abd"', False),
    ('flag == true', True),
    ('flag', True),
    ('zero', False),
    ('empty', False),
    ('x', True),
    ('"text"', True),
])
def test_eval_condition(evaluator, context, text, expected):
    assert evaluator.eval_condition(expr(text), context) is expected


def test_compare_nil_renders_as_nil(evaluator):
    assert evaluator.compare(None, None, '==') is True
    assert evaluator.compare(None, "nil", '==') is True
    assert evaluator.compare(None, 0.0, '<') is False


def test_truthiness_of_other_values(evaluator):
    assert evaluator.truthy(None) is False
    assert evaluator.truthy(object()) is False
    assert evaluator.truthy(-1.0) is True

# =================================================================
# Statements
# =================================================================

def test_print_emits_stdout_side_effect(evaluator):
    run(evaluator, 'let x = 4.0\nprint(x)\nprint(4.5)')
    assert stdout(evaluator) == ["4", "4.5"]
    assert evaluator.side_effects[0] == {"topics": ["stdout"], "message": "4"}


def test_print_nil(evaluator):
    run(evaluator, 'let n =\nprint(n)')
    assert stdout(evaluator) == ["nil"]


def test_let_in_if_body_is_visible_afterwards(evaluator):
    _, ctx = run(evaluator, 'let x = 1\nif x == 1 { let x = 2 }\nprint(x)')
    assert stdout(evaluator) == ["2"]
    assert ctx['x'] == 2.0


def test_exactly_one_branch_runs(evaluator):
    run(evaluator, 'let x = 10\nif x >= 10 { print("yes") } else { print("no") }')
    assert stdout(evaluator) == ["yes"]


def test_else_if_chain_picks_first_match(evaluator):
    src = """
let a = 2
if a == 1 {
  print("one")
} else if a == 2 {
  print("two")
} else if a >= 2 {
  print("two or more")
} else {
  print("other")
}
"""
    run(evaluator, src)
    assert stdout(evaluator) == ["two"]


def test_nested_if(evaluator):
    src = """
let n = 5
if n > 1 {
  if n > 10 {
    print("big")
  } else {
    print("medium")
  }
} else {
  print("small")
}
print("done")
"""
    run(evaluator, src)
    assert stdout(evaluator) == ["medium", "done"]


def test_block_returns_last_statement_value(evaluator):
    value, _ = run(evaluator, 'let a = 1\nlet b = "two"')
    assert value == "two"


def test_unknown_line_is_reported_and_execution_continues(evaluator):
    run(evaluator, 'let a = 1\nwhile a {\n  print("body")\n}\nprint("after")')
    assert diagnostics(evaluator) == ["line 2: unknown command: while a"]
    assert stdout(evaluator) == ["body", "after"]


def test_let_syntax_error_is_reported(evaluator):
    run(evaluator, 'let x\nprint("next")')
    assert diagnostics(evaluator) == ["line 1: syntax error in let: let x"]
    assert stdout(evaluator) == ["next"]


def test_parse_diagnostics_are_reported_before_running(evaluator):
    run(evaluator, 'if 1 == 1 {\nprint("inside")')
    assert diagnostics(evaluator) == ["line 1: syntax: unclosed block opened on line 1"]
    assert stdout(evaluator) == ["inside"]


def test_missing_brace_body_still_belongs_to_the_if(evaluator):
    run(evaluator, 'if 1 == 2\nprint("skipped")')
    assert stdout(evaluator) == []
    assert diagnostics(evaluator) == ["line 1: syntax: missing '{' after if condition"]


def test_strict_names_error_is_a_statement_diagnostic(symbols):
    strict = Evaluator(symbols, strict_names=True)
    run(strict, 'print(nobody)\nprint("still")')
    assert diagnostics(strict) == ["line 1: unresolved name: nobody"]
    assert stdout(strict) == ["still"]

# =================================================================
# Calls
# =================================================================

def test_call_dispatches_marshalled_values(evaluator, symbols):
    seen = []

    def fn(*args):
        seen.extend(args)

    symbols.register('fn', fn)
    run(evaluator, 'let c = 3\nfn("a, b", c)')
    assert seen == ["a, b", 3.0]


def test_unresolved_call_reports_and_continues(evaluator):
    run(evaluator, 'let a = 1\nnosuch(a)\nprint("still here")')
    assert diagnostics(evaluator) == ["line 2: unknown command: nosuch (symbol not found: nosuch)"]
    assert stdout(evaluator) == ["still here"]


def test_call_value_becomes_block_value(evaluator, symbols):
    symbols.register('double', lambda n: n * 2)
    value, _ = run(evaluator, 'double(21)')
    assert value == 42.0


def test_host_exception_is_reported(evaluator, symbols):
    def explode():
        raise RuntimeError("boom")

    symbols.register('explode', explode)
    run(evaluator, 'explode()\nprint("after")')
    assert diagnostics(evaluator) == ["line 1: runtime error in explode: RuntimeError: boom"]
    assert stdout(evaluator) == ["after"]


def test_current_evaluator_is_set_during_run(evaluator, symbols):
    captured = []
    symbols.register('probe', lambda: captured.append(current_evaluator()))
    run(evaluator, 'probe()')
    assert captured == [evaluator]
    assert current_evaluator() is None

# =================================================================
# Streams and debugging
# =================================================================

def test_stream_receives_effects_as_they_happen(symbols):
    out = io.StringIO()
    ev = Evaluator(symbols, stream=out)
    run(ev, 'print("one")\nnosuch()\nprint("two")')
    assert out.getvalue().splitlines() == [
        "one",
        "line 2: unknown command: nosuch (symbol not found: nosuch)",
        "two",
    ]


def test_debug_trace_goes_to_stderr(evaluator, monkeypatch, capsys):
    monkeypatch.setenv("OSUN_DEBUG", "1")
    run(evaluator, 'let a = 1')
    assert "[DBG] let a = 1.0" in capsys.readouterr().err


def test_no_debug_trace_by_default(evaluator, monkeypatch, capsys):
    monkeypatch.delenv("OSUN_DEBUG", raising=False)
    run(evaluator, 'let a = 1')
    assert capsys.readouterr().err == ""

# =================================================================
# Deep nesting and long chains
# =================================================================

def nested_ifs(depth):
    lines = ['if 1 == 1 {'] * depth + ['print("deep")'] + ['}'] * depth + ['print("after")']
    return "\n".join(lines)


def else_if_chain(links):
    lines = ['let a = 0', 'if a == 1 {', '  print("1")']
    for i in range(2, links + 1):
        lines += [f'}} else if a == {i} {{', f'  print("{i}")']
    lines += ['} else {', '  print("none")', '}', 'print("after")']
    return "\n".join(lines)


def test_moderate_nesting_runs(evaluator):
    run(evaluator, nested_ifs(50))
    assert stdout(evaluator) == ["deep", "after"]
    assert diagnostics(evaluator) == []


def test_overly_deep_block_is_skipped_and_run_continues(evaluator):
    run(evaluator, nested_ifs(300))
    assert stdout(evaluator) == ["after"]
    assert diagnostics(evaluator) == ["line 101: syntax: block nested deeper than 100 levels skipped"]


def test_long_else_if_chain_reaches_final_else(evaluator):
    run(evaluator, else_if_chain(400))
    assert stdout(evaluator) == ["none", "after"]
    assert diagnostics(evaluator) == []


def test_long_else_if_chain_picks_late_link(evaluator):
    run(evaluator, else_if_chain(400).replace('let a = 0', 'let a = 399'))
    assert stdout(evaluator) == ["399", "after"]


def test_failing_else_if_condition_reports_its_own_line(symbols):
    strict = Evaluator(symbols, strict_names=True)
    src = 'let a = 2\nif a == 1 {\n  print("one")\n} else if nobody {\n  print("two")\n}\nprint("after")'
    run(strict, src)
    assert diagnostics(strict) == ["line 4: unresolved name: nobody"]
    assert stdout(strict) == ["after"]
