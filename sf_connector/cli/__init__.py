"""Command-line configuration and command handlers"""
from sf_connector.cli.config import parse_arguments, build_parser
from sf_connector.cli.commands import COMMANDS, build_connector, run_command

__all__ = [
    "parse_arguments",
    "build_parser",
    "COMMANDS",
    "build_connector",
    "run_command",
]
