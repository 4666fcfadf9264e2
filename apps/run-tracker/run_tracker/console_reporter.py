"""Console reporter for run-tracker command output with environment detection."""

import json
import os
import sys
from typing import Any, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .output_config import OutputFormat
from .schemas import ProjectStatus, ScenarioDetail

_CI_VARIABLES = ("CI", "JENKINS_HOME", "GITLAB_CI", "TRAVIS", "GITHUB_ACTIONS")

_RESULT_STYLES = {"pass": "green", "fail": "red", None: "dim"}


def _result_label(result: Optional[str]) -> str:
    return result.upper() if result else "NEVER RUN"


def _format_duration(duration: Optional[float]) -> str:
    if duration is None:
        return "-"
    return f"{duration:.0f}ms"


class StatusReporter:
    """
    Renders tool results for humans or machines.

    - Interactive terminals get rich tables and panels
    - CI and piped output get plain text
    - ``json`` prints the camelCase payload exactly as the tools return it
    """

    def __init__(self, output_format: OutputFormat = OutputFormat.AUTO):
        self.output_format = output_format
        self.use_rich = self._detect_rich()
        self.console = Console() if self.use_rich else None

    def _detect_rich(self) -> bool:
        if self.output_format == OutputFormat.RICH:
            return True
        if self.output_format in (OutputFormat.PLAIN, OutputFormat.JSON):
            return False
        is_terminal = sys.stdout.isatty()
        is_ci = any(name in os.environ for name in _CI_VARIABLES)
        return is_terminal and not is_ci

    @property
    def is_json(self) -> bool:
        return self.output_format == OutputFormat.JSON

    def print_json(self, payload: Any) -> None:
        print(json.dumps(payload, indent=2, ensure_ascii=False))

    # generic results

    def show_result(self, title: str, payload: dict[str, Any]) -> None:
        """Key/value rendering of a tool result; nested values are shown as JSON."""
        if self.is_json:
            self.print_json(payload)
            return
        if self.use_rich:
            table = Table(show_header=False, box=None, pad_edge=False)
            table.add_column("Field", style="dim")
            table.add_column("Value")
            for key, value in payload.items():
                table.add_row(key, self._render_value(value))
            self.console.print(Panel(table, title=Text(title, style="bold cyan"), border_style="cyan"))
        else:
            print(title)
            for key, value in payload.items():
                print(f"  {key}: {self._render_value(value)}")

    @staticmethod
    def _render_value(value: Any) -> str:
        if isinstance(value, (dict, list)):
            return json.dumps(value, ensure_ascii=False)
        if value is None:
            return "-"
        return str(value)

    # status

    def show_project_status(self, status: ProjectStatus) -> None:
        if self.is_json:
            self.print_json(status.as_serializable())
            return

        name = status.project_name or "(unnamed project)"
        if self.use_rich:
            table = Table(show_header=True, header_style="bold cyan")
            table.add_column("", width=2)
            table.add_column("Scenario", width=28)
            table.add_column("Title", width=36)
            table.add_column("Steps", justify="right")
            table.add_column("Runs", justify="right")
            table.add_column("Pass rate", justify="right")
            table.add_column("Last result")
            for scenario in status.scenarios:
                table.add_row(
                    "★" if scenario.starred else "",
                    scenario.slug,
                    scenario.title,
                    str(scenario.step_count),
                    str(scenario.total_runs),
                    f"{scenario.pass_rate}%",
                    Text(_result_label(scenario.last_result), style=_RESULT_STYLES.get(scenario.last_result, "dim")),
                )

            summary = Text()
            summary.append(f"Scenarios: {status.scenario_count}  ", style="bold")
            summary.append(f"Passing: {status.passing}  ", style="bold green")
            summary.append(f"Failing: {status.failing}  ", style="bold red" if status.failing else "bold green")
            summary.append(f"Never run: {status.never_run}", style="dim")

            self.console.print(table)
            self.console.print(Panel(summary, title=Text(name, style="bold cyan"), border_style="cyan"))
        else:
            print(f"Project: {name}")
            print("-" * 80)
            for scenario in status.scenarios:
                star = "*" if scenario.starred else " "
                print(
                    f"{star} {scenario.slug:<28} {_result_label(scenario.last_result):<10} "
                    f"runs={scenario.total_runs} passRate={scenario.pass_rate}% steps={scenario.step_count}"
                )
            print("-" * 80)
            print(
                f"Scenarios: {status.scenario_count} | Passing: {status.passing} | "
                f"Failing: {status.failing} | Never run: {status.never_run}"
            )

    def show_scenario_detail(self, detail: ScenarioDetail) -> None:
        if self.is_json:
            self.print_json(detail.as_serializable())
            return

        stats = detail.meta
        if self.use_rich:
            header = Text()
            header.append(f"{detail.title}\n", style="bold white")
            header.append(f"Steps: {detail.step_count}  Runs: {stats.total_runs}  ", style="bold")
            header.append(f"Passed: {stats.pass_count}  ", style="bold green")
            header.append(f"Failed: {stats.fail_count}  ", style="bold red" if stats.fail_count else "bold green")
            header.append(f"Avg: {stats.avg_duration}ms", style="bold cyan")
            self.console.print(Panel(header, title=Text(detail.slug, style="bold cyan"), border_style="cyan"))

            runs = Table(show_header=True, header_style="bold cyan")
            runs.add_column("#", justify="right", style="dim")
            runs.add_column("Run", width=12)
            runs.add_column("Status", width=8)
            runs.add_column("Duration", justify="right")
            runs.add_column("Completed")
            runs.add_column("Error")
            for run in detail.recent_runs:
                runs.add_row(
                    str(run.run_number),
                    run.id,
                    Text(run.status.upper(), style=_RESULT_STYLES[run.status]),
                    _format_duration(run.duration),
                    run.completed_at.isoformat() if run.completed_at else "-",
                    Text(run.error_message or "", style="red"),
                )
            self.console.print(runs)
        else:
            print(f"Scenario: {detail.slug} - {detail.title}")
            print(
                f"Steps: {detail.step_count} | Runs: {stats.total_runs} | Passed: {stats.pass_count} | "
                f"Failed: {stats.fail_count} | Avg: {stats.avg_duration}ms"
            )
            print("-" * 80)
            for run in detail.recent_runs:
                line = f"#{run.run_number} {run.id} {run.status.upper()} {_format_duration(run.duration)}"
                if run.error_message:
                    line += f" - {run.error_message}"
                print(line)

    def print_success(self, message: str) -> None:
        if self.use_rich:
            self.console.print(f"[green]{message}[/]")
        else:
            print(message)
