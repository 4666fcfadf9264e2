"""Console and log output format shared with the other command line tools."""

import os
from enum import Enum
from typing import Literal, Mapping, Optional


class OutputFormat(str, Enum):
    """Console output format."""
    AUTO = "auto"
    RICH = "rich"
    PLAIN = "plain"
    JSON = "json"


LogFormat = Literal["json", "console", "plain"]

ENV_VAR_NAME = "CONSOLE_OUTPUT_FORMAT"


def get_output_format(
    cli_override: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> OutputFormat:
    """
    Resolve the output format with priority: CLI parameter > environment variable > auto.

    Unrecognised values at one level fall through to the next.
    """
    env = os.environ if environ is None else environ
    for candidate in (cli_override, env.get(ENV_VAR_NAME)):
        if candidate:
            try:
                return OutputFormat(candidate.lower())
            except ValueError:
                continue
    return OutputFormat.AUTO


def log_format_for(output_format: OutputFormat) -> LogFormat:
    """auto/rich -> console (coloured), plain -> plain, json -> json."""
    if output_format is OutputFormat.JSON:
        return "json"
    if output_format is OutputFormat.PLAIN:
        return "plain"
    return "console"
