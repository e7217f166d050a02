import argparse
import sys
from pathlib import Path

from osun.osun_lexer import tokenize
from osun.osun_runtime import ScriptRunner
from osun.osun_serialize import load_variables


def run_script_file(runner: ScriptRunner, file_path: str) -> int:
    """Run an Osun script file non-interactively; returns the exit status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: cannot read {file_path}: {e}", file=sys.stderr)
        return 1
    result = runner.handle_script(source)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return 1
    return 0


def brace_depth(text: str) -> int:
    depth = 0
    for tok in tokenize(text):
        if tok.is_op('{'):
            depth += 1
        elif tok.is_op('}'):
            depth -= 1
    return depth


def repl(runner: ScriptRunner) -> None:
    print("Osun REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")
    while True:
        try:
            line = input(">> ")
            if line.strip() == "exit":
                break
            # Keep reading until every opened block is closed
            buffer = [line]
            while brace_depth("\n".join(buffer)) > 0:
                buffer.append(input(".. "))
            source = "\n".join(buffer)
            if not source.strip():
                continue
            result = runner.handle_script(source)
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
        except EOFError:
            print("\nExiting.")
            break


def main(argv=None) -> int:
    """Run a script file when provided, otherwise start the interactive REPL."""
    parser = argparse.ArgumentParser(prog="osun", description="Run Osun scripts.")
    parser.add_argument("script", nargs="?", help="path to a .os script; omit for a REPL")
    parser.add_argument("--seed", metavar="FILE", help="YAML or JSON file of variables to seed before running")
    args = parser.parse_args(argv)

    # Print lines and diagnostics go straight to stdout as they happen
    runner = ScriptRunner(stream=sys.stdout)
    if args.seed:
        try:
            seeded = load_variables(args.seed)
        except (OSError, ValueError) as e:
            print(f"Error: cannot load seed file {args.seed}: {e}", file=sys.stderr)
            return 1
        for name, value in seeded.items():
            runner.set_variable(name, value)

    if args.script:
        return run_script_file(runner, args.script)
    repl(runner)
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nExiting.")
