"""
Command-line interface for the MindBridge privacy core.

Runs the per-circuit trusted setup, proves and verifies wellness claims, and
aggregates encrypted metrics with a differentially-private release.
"""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from mindbridge_privacy import __version__
from mindbridge_privacy.aggregation import (
    AggregationEngine,
    AggregationError,
    BudgetLedger,
    MetricSchema,
)
from mindbridge_privacy.log import configure_logging
from mindbridge_privacy.settings import load_settings
from mindbridge_privacy.zk import (
    PrivacyProtocolError,
    ProofCache,
    ProofService,
    load_context,
    setup_circuits,
)


def _read_json(path):
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise click.BadParameter(f"cannot read {path}: {e}")


def _fail(message):
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--settings',
    'settings_path',
    type=click.Path(exists=True, dir_okay=False),
    help='YAML settings file (default: $MINDBRIDGE_SETTINGS)'
)
@click.option('--artifacts-dir', type=click.Path(file_okay=False), help='Circuit artifacts directory')
@click.option('--log-level', type=str, help='Log level (default: INFO)')
@click.option('--json-logs', is_flag=True, help='Emit JSON log lines')
@click.pass_context
def main(ctx, settings_path, artifacts_dir, log_level, json_logs):
    """
    MindBridge privacy core.

    Zero-knowledge wellness proofs and privacy-preserving metric aggregation.
    """
    try:
        settings = load_settings(
            settings_path,
            artifacts_dir=artifacts_dir,
            log_level=log_level,
            log_json=json_logs or None,
        )
        configure_logging(settings.log_level, json=settings.log_json)
    except (OSError, ValueError) as e:
        raise click.UsageError(str(e))
    ctx.obj = settings


def _service(settings):
    context = load_context(settings.artifacts_dir)
    cache = ProofCache(ttl=settings.cache_ttl_seconds, max_entries=settings.cache_max_entries)
    return ProofService(context, cache=cache, max_workers=settings.prover_workers)


@main.command()
@click.pass_obj
def setup(settings):
    """Run the trusted setup for every circuit and write its artifacts."""
    context = setup_circuits(settings.artifacts_dir)
    for circuit_id in context.available:
        click.echo(click.style(f"✓ {circuit_id}", fg="green"))
    click.echo(f"Artifacts written to {context.base_dir}")


@main.command()
@click.pass_obj
def circuits(settings):
    """List circuits and whether their artifacts loaded."""
    context = load_context(settings.artifacts_dir)
    for circuit_id in context.available:
        click.echo(click.style(f"✓ {circuit_id}", fg="green"))
    for circuit_id, reason in sorted(context.failures.items()):
        click.echo(click.style(f"✗ {circuit_id}: {reason}", fg="red"))


@main.command()
@click.argument('circuit_id')
@click.option('--private', 'private_path', required=True, type=click.Path(exists=True), help='JSON private inputs')
@click.option('--public', 'public_path', required=True, type=click.Path(exists=True), help='JSON public inputs')
@click.option('--output', type=click.Path(), help='Write the wire-format proof here (default: stdout)')
@click.pass_obj
def prove(settings, circuit_id, private_path, public_path, output):
    """
    Generate a proof for CIRCUIT_ID.

    Examples:

        mindbridge-privacy prove wellness_milestone --private p.json --public q.json
    """
    service = _service(settings)
    try:
        proof = service.generate_proof(
            circuit_id, _read_json(private_path), _read_json(public_path)
        )
    except PrivacyProtocolError as e:
        _fail(f"{type(e).__name__}: {e}")

    document = json.dumps(proof.to_wire(), indent=2)
    if output:
        Path(output).write_text(document, encoding="utf-8")
        click.echo(click.style(f"✓ Proof saved to: {output}", fg="green"))
    else:
        click.echo(document)


@main.command()
@click.argument('proof_path', type=click.Path(exists=True))
@click.option('--circuit', 'circuit_id', help='Expected circuit id (default: taken from the proof)')
@click.pass_obj
def verify(settings, proof_path, circuit_id):
    """Verify a wire-format proof; exits non-zero when it does not verify."""
    document = _read_json(proof_path)
    service = _service(settings)
    if circuit_id is None:
        circuit_id = document.get("circuitId") if isinstance(document, dict) else None
    try:
        ok = service.verify_proof(circuit_id, document)
    except PrivacyProtocolError as e:
        _fail(f"{type(e).__name__}: {e}")
    if not ok:
        _fail("proof does not verify")
    click.echo(click.style("✓ proof verifies", fg="green"))


@main.command()
@click.argument('metrics_path', type=click.Path(exists=True))
@click.option(
    '--field',
    'field_specs',
    multiple=True,
    help='Metric field as name or name=kind (kind: average|count); default: all averaged'
)
@click.option('--epsilon', type=float, default=1.0, show_default=True, help='Epsilon charged for this release')
@click.option('--consumer', default='cli', show_default=True, help='Consumer whose budget is charged')
@click.pass_obj
def aggregate(settings, metrics_path, field_specs, epsilon, consumer):
    """
    Aggregate per-user metrics and release noisy statistics.

    METRICS_PATH is a JSON list of {"user_id": ..., "metrics": {...}}.
    """
    records = _read_json(metrics_path)
    if not isinstance(records, list):
        raise click.BadParameter("metrics file must hold a JSON list")
    if not all(isinstance(r, dict) and isinstance(r.get("metrics"), dict) for r in records):
        raise click.BadParameter("each metrics record must be an object with a \"metrics\" object")

    if field_specs:
        fields = dict(
            spec.split("=", 1) if "=" in spec else (spec, "average")
            for spec in field_specs
        )
    else:
        names = sorted({k for r in records for k in r["metrics"]})
        fields = {name: "average" for name in names}

    try:
        engine = AggregationEngine(
            MetricSchema(fields),
            ledger=BudgetLedger(default_cap=settings.epsilon_cap),
            table_bits=settings.decryption_table_bits,
        )
        encrypted = [engine.encrypt(r["user_id"], r["metrics"]) for r in records]
        release = engine.release(engine.aggregate(encrypted), epsilon, consumer)
    except (AggregationError, KeyError, TypeError, ValueError) as e:
        _fail(f"{type(e).__name__}: {e}")

    table = Table(title=f"Private release (ε={epsilon}, consumer={consumer})")
    table.add_column("Metric", style="cyan")
    table.add_column("Kind")
    table.add_column("Users", justify="right")
    table.add_column("Released", justify="right", style="green")
    table.add_column("95% ±", justify="right")
    for name, result in release.results.items():
        table.add_row(
            name,
            result.kind,
            str(result.user_count),
            f"{result.released_value:.2f}",
            f"{result.confidence_half_width:.2f}",
        )
    Console().print(table)
    click.echo(f"Remaining budget for {consumer}: {release.budget.remaining}")


if __name__ == "__main__":
    main()
