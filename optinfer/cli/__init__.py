"""optinfer.cli: コマンドラインツール."""
