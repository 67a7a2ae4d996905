"""CLI application for ProvGuard."""

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from provguard.batch import DEFAULT_CONCURRENCY, BatchVerifier
from provguard.models import LockfileReport, PackageSpec, VerificationResult
from provguard.policy import Policy, load_policy
from provguard.registry import DEFAULT_REGISTRY, DEFAULT_TIMEOUT, RegistryClient
from provguard.verify import PackageVerifier

console = Console(soft_wrap=True, highlight=False)

# Maximum entries listed per report section
REPORT_LIMIT = 50


def format_package_result(result: VerificationResult) -> str:
    """Format the details printed under a passing package."""
    lines = [f" tarball sha256: {result.tarball_digest}"]
    if result.attestation_url:
        lines.append(f" attestations: {result.attestation_url}")
    if result.signature_verified:
        lines.append(" signature: verified")
    return "\n".join(lines)


def format_report(report: LockfileReport) -> str:
    """Format the provenance risk diff for a lockfile report."""
    lines = [
        "— Provenance risk diff —",
        f"packages: {report.total}, with provenance: {report.with_attestations}, "
        f"without: {report.without_attestations}, failures: {report.failures}",
    ]

    missing = report.missing
    if missing:
        lines.append("Packages without provenance:")
        for item in missing[:REPORT_LIMIT]:
            suffix = ""
            if item.suggestion and item.suggestion.suggested:
                suffix = f" → suggest {item.suggestion.suggested} ({item.suggestion.kind.value})"
            lines.append(f" - {item.name}@{item.version}{suffix}")
        if len(missing) > REPORT_LIMIT:
            lines.append(f" …and {len(missing) - REPORT_LIMIT} more")

    failed = report.failed
    if failed:
        lines.append("Packages with provenance but verification FAILED:")
        for item in failed[:REPORT_LIMIT]:
            lines.append(f" - {item.name}@{item.version} — {item.reason}")
        if len(failed) > REPORT_LIMIT:
            lines.append(f" …and {len(failed) - REPORT_LIMIT} more")

    return "\n".join(lines)


def gate_package(result: VerificationResult, policy: Policy) -> str | None:
    """Return the failure message for a single package, or None if it passes."""
    if not result.ok:
        return result.reason
    if policy.require_subject_match and result.tarball_digest not in result.subject_digests:
        return "subject digest mismatch"
    if policy.verify_signature and not result.signature_verified:
        return "signature not verified"
    return None


def gate_report(report: LockfileReport, policy: Policy) -> str | None:
    """Return the failure message for a lockfile report, or None if it passes."""
    missing = report.without_attestations
    if (policy.require_provenance and missing > 0) or report.failures > 0:
        return f"Lockfile verify failed: missing={missing}, failures={report.failures}"
    return None


async def run_package(
    spec: PackageSpec,
    policy: Policy,
    registry_url: str,
    timeout: float | None,
    retries: int,
) -> VerificationResult:
    async with RegistryClient(registry_url, timeout=timeout, retries=retries) as registry:
        verifier = PackageVerifier(registry)
        return await verifier.verify_one(
            spec.name,
            spec.version,
            verify_signature=policy.verify_signature,
            allowed_issuers=policy.allowed_issuers,
        )


async def run_lockfile(
    path: Path,
    policy: Policy,
    deep: bool,
    registry_url: str,
    timeout: float | None,
    retries: int,
    concurrency: int,
) -> LockfileReport:
    async with RegistryClient(registry_url, timeout=timeout, retries=retries) as registry:
        batch = BatchVerifier(registry, concurrency=concurrency)
        return await batch.verify_lockfile(
            path,
            verify_signature=policy.verify_signature,
            allowed_issuers=policy.allowed_issuers,
            deep=deep,
        )


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


app = typer.Typer(
    name="provguard",
    help="ProvGuard - Verify npm provenance/attestations for packages or lockfiles",
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """ProvGuard - Verify npm provenance/attestations for packages or lockfiles."""
    configure_logging(verbose)


@app.command()
def verify(
    pkg: str | None = typer.Option(None, "--pkg", "-p", help="Package spec, e.g. lodash@4.17.21"),
    lockfile: str | None = typer.Option(None, "--lockfile", "-l", help="Lockfile path (package-lock.json)"),
    policy_path: str | None = typer.Option(None, "--policy", "-P", help="Policy YAML path (.provenance-gatekeeper.yml)"),
    deep: bool = typer.Option(False, "--deep", help="Lockfile mode: fully verify packages that have attestations (slower)"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
    registry_url: str = typer.Option(DEFAULT_REGISTRY, "--registry", help="npm registry URL"),
    concurrency: int = typer.Option(DEFAULT_CONCURRENCY, "--concurrency", help="Parallel lockfile workers"),
    timeout: float = typer.Option(DEFAULT_TIMEOUT, "--timeout", help="Request timeout in seconds"),
    retries: int = typer.Option(0, "--retries", help="Connection retries per request"),
) -> None:
    """Verify a single package (name@version) or a lockfile."""

    try:
        policy = load_policy(policy_path)

        if pkg:
            spec = PackageSpec.parse(pkg)
            result = asyncio.run(run_package(spec, policy, registry_url, timeout, retries))
            failure = gate_package(result, policy)

            if format_type == "json":
                typer.echo(json.dumps(result.to_dict(), indent=2))
            elif failure:
                console.print(f"FAIL {spec}: {failure}", style="red", markup=False)
            else:
                console.print(f"OK {spec}", style="green", markup=False)
                console.print(format_package_result(result), markup=False)

            if failure:
                raise typer.Exit(2)

        elif lockfile:
            path = Path(lockfile).resolve()
            if not path.exists():
                console.print(f"Lockfile not found: {path}", style="red", markup=False)
                raise typer.Exit(2)

            report = asyncio.run(
                run_lockfile(
                    path,
                    policy,
                    deep or policy.verify_signature,
                    registry_url,
                    timeout,
                    retries,
                    concurrency,
                )
            )
            failure = gate_report(report, policy)

            if format_type == "json":
                typer.echo(json.dumps(report.to_dict(), indent=2))
            else:
                console.print(format_report(report), markup=False)
                if failure:
                    console.print(failure, style="red", markup=False)
                else:
                    console.print("Lockfile verify OK.", style="green")

            if failure:
                raise typer.Exit(2)

        else:
            console.print("Error: Specify --pkg or --lockfile", style="red")
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(2)


if __name__ == "__main__":
    app()
