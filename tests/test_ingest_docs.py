from ingest_docs import parse_args


def test_parser_defaults() -> None:
    args = parse_args([])
    assert args.data_dir is None
    assert args.allow_missing_urls is False
    assert args.log_level == "INFO"


def test_parser_accepts_overrides() -> None:
    args = parse_args(["--data-dir", "docs", "--allow-missing-urls", "--log-level", "debug"])
    assert args.data_dir == "docs"
    assert args.allow_missing_urls is True
    assert args.log_level == "debug"
