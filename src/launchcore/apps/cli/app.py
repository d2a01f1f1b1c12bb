# src/launchcore/apps/cli/app.py
from __future__ import annotations

import functools
import os, traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from dotenv import load_dotenv, find_dotenv
from rich.console import Console
from rich.table import Table

# загружаем .env один раз (для переменных вроде LAUNCHCORE_LOG_DIR)
load_dotenv(find_dotenv(usecwd=True))

from launchcore.description import PythonDescriptionSource
from launchcore.services.context import LaunchContext
from launchcore.services.executor import LaunchExecutor
from launchcore.services.logging import attach_event_logger, setup_logging
from launchcore.services.settings import Settings

app = typer.Typer(help="launchcore: запуск иерархических описаний многопроцессных систем")
console = Console()

# -------- вспомогательные --------


def _run_safe(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception:
            if os.getenv("LAUNCHCORE_CLI_DEBUG") == "1":
                traceback.print_exc()
            raise

    return wrapper


def parse_launch_arguments(items: List[str]) -> Dict[str, str]:
    """``name:=value`` (или ``name=value``) -> словарь аргументов запуска."""
    out: Dict[str, str] = {}
    for item in items:
        if ":=" in item:
            k, v = item.split(":=", 1)
        elif "=" in item:
            k, v = item.split("=", 1)
        else:
            raise typer.BadParameter(f"ожидается name:=value, получено {item!r}")
        k = k.strip()
        if not k:
            raise typer.BadParameter(f"пустое имя аргумента в {item!r}")
        out[k] = v
    return out


def load_arguments_file(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path}: ожидается YAML-словарь name: value")
    # нетекстовые значения (списки, словари) сохраняем как есть
    return {str(k): (v if isinstance(v, (dict, list)) else str(v)) for k, v in data.items()}


# -------- команды --------


@app.command("run")
@_run_safe
def run(
    description: Path = typer.Argument(..., exists=True, dir_okay=False, help="Python-файл с generate_description()"),
    arguments: Optional[List[str]] = typer.Argument(None, help="Аргументы запуска name:=value"),
    args_file: Optional[Path] = typer.Option(None, "--args-file", exists=True, dir_okay=False, help="YAML со значениями аргументов"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Уровень логирования (по умолчанию из ENV/.env)"),
    log_dir: Optional[str] = typer.Option(None, "--log-dir", help="Каталог логов"),
    fail_fast: Optional[bool] = typer.Option(None, "--fail-fast/--no-fail-fast", help="Первая ошибка действия завершает запуск"),
):
    """Запустить описание и ждать его завершения (код выхода = результат запуска)."""
    settings = Settings.from_sources().with_overrides(log_level=log_level, logs_dir=log_dir, fail_fast=fail_fast)
    logger = setup_logging(settings.logs_dir, settings.log_level)

    launch_args: Dict[str, Any] = {}
    if args_file is not None:
        launch_args.update(load_arguments_file(args_file))
    launch_args.update(parse_launch_arguments(arguments or []))

    context = LaunchContext(launch_args, write_policy=settings.handler_write_policy)
    attach_event_logger(context.bus, logger.getChild("events"))
    executor = LaunchExecutor(context, settings=settings)
    executor.include(PythonDescriptionSource(description).load(context))
    code = executor.run()
    if code != 0:
        console.print(f"[red]launch finished with failures ({len(executor.failures)} failed actions)[/red]")
    raise typer.Exit(code)


@app.command("show-args")
@_run_safe
def show_args(
    description: Path = typer.Argument(..., exists=True, dir_okay=False, help="Python-файл с generate_description()"),
):
    """Показать аргументы, которые объявляет описание."""
    desc = PythonDescriptionSource(description).load(LaunchContext())
    declared = desc.declared_arguments()
    if not declared:
        console.print("[yellow]Описание не объявляет аргументов.[/yellow]")
        return
    table = Table(title=str(description))
    table.add_column("name", style="cyan")
    table.add_column("default")
    table.add_column("choices")
    table.add_column("description")
    for arg in declared:
        default = "".join(s.describe() for s in arg.default) if arg.default is not None else "(required)"
        table.add_row(arg.name, default, ", ".join(arg.choices or []), arg.description)
    console.print(table)


def main() -> None:
    app()
