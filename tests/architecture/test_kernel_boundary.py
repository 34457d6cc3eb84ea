"""
Layer boundaries.

1. commission_kernel/** may NOT import commission_services,
   commission_config or commission_engines.  The kernel never depends
   upward.

2. commission_engines/** stays pure: no ORM, no database, no services,
   no configuration loading.

3. commission_kernel/domain/** has no ORM or database imports at runtime.

4. The kernel invariants declaration is complete and non-empty.

These tests read source code via AST; they cannot break anything.
"""

import ast
from pathlib import Path

from commission_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    KernelInvariant,
)

ROOT = Path(__file__).resolve().parents[2]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


def _runtime_imports(filepath: Path) -> list[tuple[int, str]]:
    """(line_number, module) for every import outside ``if TYPE_CHECKING:``."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))

    type_checking_lines: set[int] = set()
    for node in ast.walk(tree):
        if (
            isinstance(node, ast.If)
            and isinstance(node.test, ast.Name)
            and node.test.id == "TYPE_CHECKING"
        ):
            for child in node.body:
                for inner in ast.walk(child):
                    if hasattr(inner, "lineno"):
                        type_checking_lines.add(inner.lineno)

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if node_lineno := getattr(node, "lineno", None):
            if node_lineno in type_checking_lines:
                continue
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _runtime_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_forbidden_packages(self):
        violations = _violations("commission_kernel", FORBIDDEN_KERNEL_IMPORTS)
        assert not violations, (
            "Kernel boundary violation: commission_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


class TestEnginePurity:

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "yaml",
        "commission_kernel.db",
        "commission_kernel.models",
        "commission_kernel.services",
        "commission_kernel.selectors",
        "commission_services",
        "commission_config",
    )

    def test_engines_are_pure(self):
        violations = _violations("commission_engines", self.FORBIDDEN_MODULES)
        assert not violations, (
            "Engine purity violation: commission_engines/** must not touch "
            "the database, services or configuration:\n" + "\n".join(violations)
        )


class TestKernelDomainPurity:

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "commission_kernel.db",
        "commission_kernel.models",
    )

    def test_domain_no_orm_imports(self):
        violations = _violations("commission_kernel/domain", self.FORBIDDEN_MODULES)
        assert not violations, (
            "Domain purity violation: commission_kernel/domain/** must not "
            "import ORM or DB packages at runtime:\n" + "\n".join(violations)
        )


class TestInvariantDeclaration:

    def test_invariants_declared(self):
        assert ALL_KERNEL_INVARIANTS == frozenset(KernelInvariant)
        assert KernelInvariant.CONSERVATION in ALL_KERNEL_INVARIANTS
        assert KernelInvariant.APPEND_ONLY_LEDGER in ALL_KERNEL_INVARIANTS

    def test_every_invariant_documented(self):
        source = (ROOT / "commission_kernel" / "invariants.py").read_text()
        tree = ast.parse(source)
        enum_class = next(
            node for node in tree.body
            if isinstance(node, ast.ClassDef) and node.name == "KernelInvariant"
        )
        documented = set()
        body = enum_class.body
        for current, following in zip(body, body[1:]):
            if (
                isinstance(current, ast.Assign)
                and isinstance(following, ast.Expr)
                and isinstance(following.value, ast.Constant)
                and isinstance(following.value.value, str)
            ):
                documented.add(current.targets[0].id)
        assert documented == {member.name for member in KernelInvariant}
