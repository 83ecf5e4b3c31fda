import typer  # type: ignore
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
from typing_extensions import Annotated

import yaml
from pydantic import ValidationError
from rich.console import Console  # type: ignore
from rich.table import Table  # type: ignore

import glucosim
from glucosim.core.treatments import GlucoseReading
from glucosim.presets import get_preset, load_presets, preset_treatment_payloads
from glucosim.utils.run_io import build_run_metadata, write_json, write_readings_csv
from glucosim.validation import (
    format_validation_error,
    load_patient_profile,
    load_treatments,
    validate_patient_profile_dict,
    validate_treatments_payload,
)


app = typer.Typer(help="glucosim CLI - deterministic glucose projection engine.")
presets_app = typer.Typer(help="Built-in patient presets.")
app.add_typer(presets_app, name="presets")


def _parse_start(start: Optional[str]) -> datetime:
    if start is None:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(start)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _summary_table(readings: List[GlucoseReading], title: str, every: int = 12) -> Table:
    table = Table(title=title, show_lines=False)
    table.add_column("Time", style="cyan")
    table.add_column("Glucose (mg/dL)", justify="right")
    table.add_column("IOB (U)", justify="right")
    table.add_column("COB (g)", justify="right")
    table.add_column("Future", justify="center")
    for idx, reading in enumerate(readings):
        if idx % every != 0 and idx != len(readings) - 1:
            continue
        table.add_row(
            reading.timestamp.strftime("%Y-%m-%d %H:%M"),
            f"{reading.value:.1f}",
            f"{reading.iob:.2f}",
            f"{reading.cob:.1f}",
            "yes" if reading.is_future else "",
        )
    return table


def _write_outputs(console: Console, readings: List[GlucoseReading], output: Optional[Path], config: dict) -> None:
    if output is None:
        return
    csv_path = write_readings_csv(readings, output)
    write_json(csv_path.with_suffix(".meta.json"), build_run_metadata(config, csv_path))
    console.print(f"Readings saved to: [link=file://{csv_path.resolve()}]{csv_path}[/link]")


@app.command()
def project(
    patient: Annotated[Path, typer.Option(help="Path to the patient profile YAML/JSON file")],
    treatments: Annotated[Optional[Path], typer.Option(help="Path to the treatments YAML/JSON file")] = None,
    hours: Annotated[float, typer.Option(help="Projection horizon in hours")] = 12.0,
    interval: Annotated[int, typer.Option(help="Grid step in minutes")] = 5,
    start: Annotated[Optional[str], typer.Option(help="ISO-8601 start time (default: now, UTC)")] = None,
    output: Annotated[Optional[Path], typer.Option(help="CSV file to write readings to")] = None,
):
    """
    Project glucose, IOB and COB forward for one patient.
    """
    console = Console()
    if not patient.is_file():
        console.print(f"[bold red]Error: Patient file '{patient}' not found.[/bold red]")
        raise typer.Exit(code=1)
    if treatments is not None and not treatments.is_file():
        console.print(f"[bold red]Error: Treatments file '{treatments}' not found.[/bold red]")
        raise typer.Exit(code=1)

    try:
        profile = load_patient_profile(patient)
        history = load_treatments(treatments) if treatments is not None else []
    except ValidationError as e:
        console.print("[bold red]Input validation failed:[/bold red]")
        for line in format_validation_error(e):
            console.print(f"- {line}")
        raise typer.Exit(code=1)
    except yaml.YAMLError as e:
        console.print(f"[bold red]Error parsing input file: {e}[/bold red]")
        raise typer.Exit(code=1)

    start_time = _parse_start(start)
    try:
        readings = glucosim.project(profile, history, start_time, hours, interval, now=datetime.now(timezone.utc))
    except glucosim.GlucoSimError as e:
        console.print(f"[bold red]Projection failed: {e}[/bold red]")
        raise typer.Exit(code=1)

    console.print(f"[bold blue]Projected {len(readings)} readings for {profile.name} ({profile.id})[/bold blue]")
    console.print(_summary_table(readings, title=f"{hours:g} h projection"))
    _write_outputs(
        console,
        readings,
        output,
        {"patient": profile.to_dict(), "treatments": [t.to_dict() for t in history], "hours": hours, "interval": interval},
    )


@app.command()
def validate(
    patient: Annotated[Path, typer.Option(help="Path to the patient profile YAML/JSON file")],
):
    """Validate a patient profile file."""
    console = Console()
    if not patient.is_file():
        console.print(f"[bold red]Error: Patient file '{patient}' not found.[/bold red]")
        raise typer.Exit(code=1)
    try:
        data = yaml.safe_load(patient.read_text()) or {}
        model = validate_patient_profile_dict(data)
    except ValidationError as e:
        console.print("[bold red]Patient profile validation failed:[/bold red]")
        for line in format_validation_error(e):
            console.print(f"- {line}")
        raise typer.Exit(code=1)
    except yaml.YAMLError as e:
        console.print(f"[bold red]Error parsing patient file: {e}[/bold red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Patient profile '{model.id}' is valid.[/green]")


@presets_app.command("list")
def presets_list():
    """List built-in presets."""
    console = Console()
    table = Table(title="Patient Presets", show_lines=False)
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Treatments", justify="right")
    table.add_column("Hours", justify="right")
    for preset in load_presets():
        table.add_row(
            preset.get("name", ""),
            preset.get("description", ""),
            str(len(preset.get("treatments", []))),
            str(preset.get("hours", "")),
        )
    console.print(table)


@presets_app.command("show")
def presets_show(
    name: Annotated[str, typer.Option(help="Preset name (e.g., breakfast_bolus)")],
):
    """Show a preset definition."""
    console = Console()
    try:
        preset = get_preset(name)
    except KeyError:
        console.print(f"[bold red]Error: Unknown preset '{name}'.[/bold red]")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(preset, indent=2))


@presets_app.command("run")
def presets_run(
    name: Annotated[str, typer.Option(help="Preset name (e.g., breakfast_bolus)")],
    start: Annotated[Optional[str], typer.Option(help="ISO-8601 start time (default: now, UTC)")] = None,
    output: Annotated[Optional[Path], typer.Option(help="CSV file to write readings to")] = None,
):
    """Project a built-in preset."""
    console = Console()
    try:
        preset = get_preset(name)
    except KeyError:
        console.print(f"[bold red]Error: Unknown preset '{name}'.[/bold red]")
        raise typer.Exit(code=1)

    start_time = glucosim.align_to_grid(_parse_start(start))
    profile = validate_patient_profile_dict(preset.get("patient", {})).to_profile()
    payloads = preset_treatment_payloads(preset, start_time)
    history = [entry.to_treatment() for entry in validate_treatments_payload(payloads).treatments]
    hours = float(preset.get("hours", 12))

    readings = glucosim.project(profile, history, start_time, hours, now=start_time)
    console.print(f"[bold blue]Preset {name}: {preset.get('description', '')}[/bold blue]")
    console.print(_summary_table(readings, title=f"{hours:g} h projection"))
    _write_outputs(console, readings, output, {"preset": name, "hours": hours})


def main() -> None:
    app()


if __name__ == "__main__":
    main()
