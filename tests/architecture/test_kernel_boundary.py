"""
Kernel Boundary & Invariants Contract.

Tests that enforce the architectural boundaries:

1. production_kernel/** may NOT import production_engines,
   production_services, or production_config. The kernel never depends
   upward.

2. production_engines/** stays pure: no database, ORM models, selectors,
   services, or configuration.

3. production_kernel/domain/** does not import ORM or DB packages.

4. The invariants declaration is complete and every invariant has an
   enforcement point in the source.

These tests read source code via AST; they cannot break anything.
"""

import ast
import glob
from pathlib import Path

from production_kernel.invariants import (
    ALL_PRODUCTION_INVARIANTS,
    FORBIDDEN_ENGINE_IMPORTS,
    FORBIDDEN_KERNEL_IMPORTS,
    ProductionInvariant,
)

ROOT = Path(__file__).resolve().parents[2]

SOURCE_PACKAGES = (
    "production_kernel",
    "production_engines",
    "production_services",
    "production_config",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(root: str) -> list[str]:
    """Return all .py files under root, relative to the repository root."""
    return sorted(
        str(Path(p).relative_to(ROOT))
        for p in glob.glob(str(ROOT / root / "**" / "*.py"), recursive=True)
    )


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    try:
        source = (ROOT / filepath).read_text()
        tree = ast.parse(source, filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(root: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(root):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Test: Kernel has no upward dependencies
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:
    """production_kernel/** must not import engines, services or config."""

    def test_kernel_files_found(self):
        assert _python_files("production_kernel")

    def test_kernel_does_not_import_forbidden_packages(self):
        violations = _violations("production_kernel", FORBIDDEN_KERNEL_IMPORTS)

        assert not violations, (
            "Kernel boundary violation: production_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Engines are pure
# ---------------------------------------------------------------------------

class TestEnginePurity:
    """production_engines/** must not touch the database or outer layers."""

    def test_engines_do_not_import_io_layers(self):
        violations = _violations("production_engines", FORBIDDEN_ENGINE_IMPORTS)

        assert not violations, (
            "Engine purity violation: production_engines/** must stay free "
            "of database, service and config imports:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_services(self):
        violations = _violations("production_config", ("production_services",))

        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# Test: Kernel domain purity
# ---------------------------------------------------------------------------

class TestKernelDomainPurity:
    """production_kernel/domain/** must not import ORM or DB packages."""

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "production_kernel.db",
        "production_kernel.models",
        "production_kernel.selectors",
    )

    def test_domain_no_orm_imports(self):
        violations = _violations("production_kernel/domain", self.FORBIDDEN_MODULES)

        assert not violations, (
            "Domain purity violation: production_kernel/domain/** must not "
            "import ORM/DB packages:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Invariants declaration exists and is complete
# ---------------------------------------------------------------------------

class TestProductionInvariantsDeclaration:
    """The invariants contract must be declared and enforced somewhere."""

    def test_required_invariants_declared(self):
        required = {
            "DERIVED_DELIVERY",
            "ALLOCATION_CONSERVATION",
            "NON_NEGATIVE_STOCK",
            "CONFIRMATION_PRECONDITIONS",
            "ONE_WAY_LIFECYCLE",
        }
        declared = {inv.name for inv in ProductionInvariant}
        missing = required - declared
        assert not missing, f"Missing production invariants: {missing}"
        assert len(ALL_PRODUCTION_INVARIANTS) == len(ProductionInvariant)

    def test_forbidden_imports_declared(self):
        for pkg in ("production_engines", "production_services", "production_config"):
            assert pkg in FORBIDDEN_KERNEL_IMPORTS, (
                f"'{pkg}' not in FORBIDDEN_KERNEL_IMPORTS"
            )
        assert "sqlalchemy" in FORBIDDEN_ENGINE_IMPORTS

    def test_every_invariant_has_enforcement_marker(self):
        """Each invariant is tagged '# INVARIANT: <value>' where it is enforced."""
        sources = "\n".join(
            (ROOT / path).read_text()
            for package in SOURCE_PACKAGES
            for path in _python_files(package)
            if not path.endswith("invariants.py")
        )
        unmarked = [
            inv.value
            for inv in ProductionInvariant
            if f"# INVARIANT: {inv.value}" not in sources
        ]
        assert not unmarked, f"Invariants without an enforcement point: {unmarked}"
