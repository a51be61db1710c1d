# main_runner.py
import importlib
import os
import sys

import questionary
from rich.console import Console

from config import MODULE_PATH

console = Console()


def list_task_modules(module_path=MODULE_PATH):
    """Task names (file stems) under modules/, skipping private/dunder files."""
    if not os.path.isdir(module_path):
        return []
    return sorted(
        os.path.splitext(f)[0]
        for f in os.listdir(module_path)
        if f.endswith('.py') and not f.startswith('_')
    )


def load_and_run_module(task_name):
    """
    Import modules.<task_name> and run its main function.
    """
    module = importlib.import_module(f"modules.{task_name}")
    if hasattr(module, 'main'):
        module.main()
    else:
        console.log(f"[yellow]No main() function found in {task_name}. Skipping...[/yellow]")


def run_selected_module():
    """
    Allow the user to select which task module to run.
    """
    tasks = list_task_modules()
    if not tasks:
        console.log(f"[red]No task modules found in '{MODULE_PATH}'.[/red]")
        return

    choices = [
        questionary.Choice(title=f"{idx + 1}. {name}", value=name)
        for idx, name in enumerate(tasks)
    ]
    selected = questionary.select("Select the task you want to run:", choices=choices).ask()

    if not selected:
        console.log("No module selected.")
        return
    try:
        load_and_run_module(selected)
    except Exception as e:
        console.log(f"[bold red]Error running {selected}: {e}[/bold red]")


if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
    run_selected_module()
