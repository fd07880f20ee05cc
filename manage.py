from digicertify.app import create_app
import os

from flask.cli import FlaskGroup
import click
from PyPDF2.errors import PdfReadError

from digicertify.rendering.pdf import pdf_page_size, read_pdf_image
from digicertify.services.export import get_exporter, run_export
from digicertify.shared.records import find_student, list_students, replace_roster
from digicertify.shared.roster import RosterError, parse_roster


def create_digicertify_app():
    return create_app()


cli = FlaskGroup(create_app=create_digicertify_app)


def _load_roster(csv_path: str) -> int:
    with open(csv_path, "rb") as fh:
        raw = fh.read()
    try:
        result = parse_roster(os.path.basename(csv_path), raw)
    except RosterError as exc:
        raise click.ClickException(str(exc)) from exc
    for warning in result.warnings:
        click.echo(f"warning: {warning}", err=True)
    return replace_roster(result.students)


@cli.command("gen_cert")
@click.option("--csv", "csv_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--usn", "usn", required=True)
@click.option("--out", "out_dir", required=True, type=click.Path(file_okay=False))
def gen_cert(csv_path: str, usn: str, out_dir: str):
    """Export one student's certificate PDF."""
    _load_roster(csv_path)
    student = find_student(usn)
    if student is None:
        click.echo("Not found", err=True)
        raise SystemExit(1)
    exporter = get_exporter()
    exporter.output_dir = out_dir
    job = run_export(exporter.export_student(student))
    if not job.ok:
        click.echo(f"Export failed: {job.error}", err=True)
        raise SystemExit(1)
    click.echo(job.path)


@cli.command("export_all")
@click.option("--csv", "csv_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--out", "out_dir", required=True, type=click.Path(file_okay=False))
def export_all(csv_path: str, out_dir: str):
    """Export every roster row, one after another."""
    count = _load_roster(csv_path)
    if not count:
        click.echo("No students in roster", err=True)
        raise SystemExit(1)
    exporter = get_exporter()
    exporter.output_dir = out_dir
    report = run_export(exporter.export_all(list_students()))
    for job in report.jobs:
        if job.ok:
            click.echo(job.path)
        else:
            click.echo(f"FAILED {job.student.usn}: {job.error}", err=True)
    click.echo(f"{len(report.completed)} exported, {len(report.failed)} failed")
    if report.failed:
        raise SystemExit(1)


@cli.command("inspect_pdf")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def inspect_pdf(path: str):
    """Print page size and embedded raster size of a certificate PDF."""
    with open(path, "rb") as fh:
        data = fh.read()
    try:
        width, height = pdf_page_size(data)
        image = read_pdf_image(data)
    except (ValueError, PdfReadError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"page: {width:.2f} x {height:.2f} pt")
    click.echo(f"image: {image.width} x {image.height} px")


if __name__ == "__main__":
    cli()
