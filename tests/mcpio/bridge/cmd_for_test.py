import argparse
import os
import sys


def _lines():
    while True:
        line = sys.stdin.readline()
        if not line:
            return
        line = line.rstrip("\n")
        if line == "quit":
            return
        yield line


def _out(text):
    sys.stdout.write(text + "\n")
    sys.stdout.flush()


def _err(text):
    sys.stderr.write(text + "\n")
    sys.stderr.flush()


def echo_lines():
    # Echo every stdin line back on stdout until "quit" or EOF
    for line in _lines():
        _out(line)


def chatty():
    # Startup banner on stderr, then every input line on both streams
    _err("booting")
    for line in _lines():
        _out(f"out:{line}")
        _err(f"err:{line}")


def emit():
    parser = argparse.ArgumentParser(description="Emit numbered lines and exit")
    parser.add_argument("count", type=int, help="Lines per stream")
    args = parser.parse_args(sys.argv[1:])
    for i in range(args.count):
        _out(f"out {i}")
        _err(f"err {i}")


def raw():
    # Unterminated CRLF output
    sys.stdout.buffer.write(b"one\r\ntwo\r\nthree")
    sys.stdout.buffer.flush()


def env():
    parser = argparse.ArgumentParser(description="Print an environment variable")
    parser.add_argument("name", help="Variable name")
    args = parser.parse_args(sys.argv[1:])
    _out(os.environ.get(args.name, "<unset>"))


def exit_cmd():
    parser = argparse.ArgumentParser(description="Exit command")
    parser.add_argument("code", type=int, help="Exit code")
    args = parser.parse_args(sys.argv[1:])
    sys.exit(args.code)


COMMANDS = {
    "echo_lines": echo_lines,
    "chatty": chatty,
    "emit": emit,
    "raw": raw,
    "env": env,
    "exit": exit_cmd,
}


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in COMMANDS:
        command = sys.argv[1]
        sys.argv = [f"cmd_for_test.py {command}"] + sys.argv[2:]
        COMMANDS[command]()
    else:
        print(f"Unknown command: {sys.argv[1:]}", file=sys.stderr)
        print(f"Available commands: {', '.join(COMMANDS)}", file=sys.stderr)
        sys.exit(1)
