"""Chat front-ends."""

from starkbot_cli.chat.repl import ChatRepl, run_one_shot, stream_reply

__all__ = ["ChatRepl", "run_one_shot", "stream_reply"]
