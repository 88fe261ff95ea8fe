import asyncio
import os
import sys
from pathlib import Path

from strm import Session
from strm.strm_serialize import load_vars, save_vars

DEFAULT_VARS = "~/.strm_vars.yaml"


def vars_path() -> Path:
    return Path(os.environ.get("STRM_VARS", DEFAULT_VARS)).expanduser()


# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)


def open_session():
    """A session with the saved variables loaded.

    Returns the session and the path to save it back to, or None when the
    saved file could not be read and must be left alone.
    """
    path = vars_path()
    try:
        saved = load_vars(path)
    except ValueError as e:
        print(f"Warning: ignoring saved variables in {path}: {e}", file=sys.stderr)
        return Session(), None
    session = Session(saved)
    for ident, (text, error) in session.rejected.items():
        print(f"Warning: cannot load saved variable {ident} = {text}: {error.msg}", file=sys.stderr)
    return session, path


def close_session(session: Session, path) -> None:
    if path is not None:
        save_vars(path, session.close())


def print_result(result) -> bool:
    """Print one evaluation result; returns False on error."""
    if result.result == 'error':
        print(result.format_error(), file=sys.stderr)
        return False
    if result.result == 'help':
        print(result.help_text)
        return True
    print(f"{result.hist_name}: {result.output}")
    return True


def is_blank(line: str) -> bool:
    return not line or line.startswith(";")


async def run_script_file(file_path: str):
    """Run a strm script file line by line and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    session, path = open_session()
    try:
        for line in source.splitlines():
            line = line.strip()
            if is_blank(line):
                continue
            if not print_result(session.evaluate(line)):
                raise SystemExit(1)
    finally:
        close_session(session, path)


async def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            await run_script_file(arg)
            return

    print("strm REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit, '?' for help.")

    session, path = open_session()

    while True:
        try:
            raw = await ainput(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if is_blank(line):
                continue
            if line == "exit":
                break

            print_result(session.evaluate(line))

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            # Internal failures abort the command, not the session
            print(f"Internal error: {e}", file=sys.stderr)

    close_session(session, path)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")


if __name__ == "__main__":
    run()
