"""
Two-Stage Record Validation

Validation happens at the ingestion boundary, before records reach the
record store. The engine never validates; it computes whatever the records
imply.

STAGE 1 - STRUCTURAL VALIDATION:
- Identity present
- Date and time formats
- Accounts required by the transaction type

STAGE 2 - SEMANTIC VALIDATION:
- Negative amounts
- Refund or discount larger than the amount
- Refund/discount on a type that ignores it
- References to accounts the store doesn't know

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the caller decides what to do.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from balancebook.models.account import Account
from balancebook.models.transaction import Transaction, TransactionType
from balancebook.models.validation import ValidationIssue, ValidationResult


ZERO = Decimal("0")


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


def _is_valid_date(value: str) -> bool:
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def _is_valid_time(value: str) -> bool:
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            datetime.strptime(value, fmt)
        except ValueError:
            continue
        return True
    return False


class RecordValidator:
    """
    Validates accounts and transactions through a two-stage pipeline.

    Stage 2 only runs when stage 1 found no errors.
    """

    def _validate_structure(
        self,
        txn: Transaction,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: structural validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not txn.date:
            issues.append(_error(
                "date", "missing",
                "Transaction date is required for ordering",
                "Set the date as YYYY-MM-DD",
            ))
        elif not _is_valid_date(txn.date):
            issues.append(_error(
                "date", "invalid_format",
                f"Date '{txn.date}' is not YYYY-MM-DD",
            ))

        if txn.time and not _is_valid_time(txn.time):
            issues.append(_error(
                "time", "invalid_format",
                f"Time '{txn.time}' is not HH:MM or HH:MM:SS",
            ))

        source = txn.source_account
        destination = txn.destination_account

        if txn.txn_type == TransactionType.INCOME:
            if not (source or destination):
                issues.append(_error(
                    "to", "missing",
                    "Income needs a receiving account",
                ))
        elif txn.txn_type == TransactionType.EXPENSE:
            if not source:
                issues.append(_error(
                    "from", "missing",
                    "Expense needs a paying account",
                ))
        else:
            label = txn.txn_type.value.capitalize()
            if not source:
                issues.append(_error("from", "missing", f"{label} needs a source account"))
            if not destination:
                issues.append(_error("to", "missing", f"{label} needs a destination account"))
            if source and source == destination and txn.txn_type == TransactionType.TRANSFER:
                issues.append(_warning(
                    "to", "self_transfer",
                    f"Transfer from {source} to itself has no effect",
                ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        txn: Transaction,
        known_accounts: Optional[set[str]],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        for field in ("amount", "discount", "refund"):
            value = getattr(txn, field)
            if value < ZERO:
                issues.append(_error(
                    field, "negative",
                    f"{field.capitalize()} ({value}) must not be negative",
                    "Amounts are face values; the sign comes from the transaction type",
                ))

        if txn.refund > txn.amount:
            issues.append(_error(
                "refund", "exceeds_amount",
                f"Refund ({txn.refund}) exceeds amount ({txn.amount})",
            ))
        if txn.discount > txn.amount:
            issues.append(_error(
                "discount", "exceeds_amount",
                f"Discount ({txn.discount}) exceeds amount ({txn.amount})",
            ))

        if txn.refund and txn.txn_type != TransactionType.EXPENSE:
            issues.append(_warning(
                "refund", "ignored",
                f"Refund is ignored on {txn.txn_type.value} transactions",
            ))
        if txn.refund_to and txn.txn_type != TransactionType.EXPENSE:
            issues.append(_warning(
                "refund_to", "ignored",
                f"Refund target is ignored on {txn.txn_type.value} transactions",
            ))
        if txn.discount and txn.txn_type != TransactionType.REPAYMENT:
            issues.append(_warning(
                "discount", "ignored",
                f"Discount is ignored on {txn.txn_type.value} transactions",
            ))

        if known_accounts is not None:
            for field, name in (
                ("from", txn.source_account),
                ("to", txn.destination_account),
                ("refund_to", txn.refund_to),
            ):
                if name and name not in known_accounts:
                    issues.append(_warning(
                        field, "unknown_account",
                        f"Account '{name}' does not exist; it will start from zero",
                    ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate_transaction(
        self,
        txn: Transaction,
        known_accounts: Optional[Iterable[str]] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation on a transaction.

        Args:
            txn: The transaction to validate
            known_accounts: Account names to check references against.
                           If None, reference checks are skipped.
        """
        known = set(known_accounts) if known_accounts is not None else None
        all_issues = []

        structure_valid, structure_issues = self._validate_structure(txn)
        all_issues.extend(structure_issues)

        semantic_valid = False
        if structure_valid:
            semantic_valid, semantic_issues = self._validate_semantic(txn, known)
            all_issues.extend(semantic_issues)

        return ValidationResult(
            record_type="transaction",
            record_id=txn.path,
            structure_valid=structure_valid,
            semantic_valid=semantic_valid,
            is_valid=structure_valid and semantic_valid,
            issues=all_issues,
        )

    def validate_account(
        self,
        account: Account,
        known_accounts: Optional[Iterable[Account]] = None,
    ) -> ValidationResult:
        """
        Validate an account record.

        Args:
            account: The account to validate
            known_accounts: Other accounts already stored. If given, a display
                           name one of them already uses is an error.
        """
        issues = []

        if account.display_name and known_accounts is not None:
            clashes = sorted(
                other.name for other in known_accounts
                if other.name != account.name and other.display_name == account.display_name
            )
            if clashes:
                issues.append(_error(
                    "display_name", "duplicate",
                    f"Display name '{account.display_name}' is already used by {', '.join(clashes)}",
                    "Give each account its own display name",
                ))

        if account.credit_limit is not None and account.credit_limit < ZERO:
            issues.append(_error(
                "credit_limit", "negative",
                "Credit limit must not be negative",
            ))
        if not account.currency:
            issues.append(_warning("currency", "missing", "Currency is empty"))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return ValidationResult(
            record_type="account",
            record_id=account.name,
            structure_valid=True,
            semantic_valid=is_valid,
            is_valid=is_valid,
            issues=issues,
        )

    def format_issues(self, result: ValidationResult) -> str:
        """
        Format validation issues as a short report.
        """
        if not result.issues:
            return f"{result.record_type} {result.record_id}: no issues"

        lines = [f"{result.record_type} {result.record_id}:"]
        for issue in result.issues:
            line = f"  [{issue.severity}] {issue.field}: {issue.message}"
            if issue.suggested_fix:
                line += f" ({issue.suggested_fix})"
            lines.append(line)
        return "\n".join(lines)
