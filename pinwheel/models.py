"""
Pin Wheel result types
Tagged outcomes returned by the entry ledger, entry service, draw engine and auto-entry batch
"""

from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Optional, List, Dict, Any


class ReserveResult(Enum):
    RESERVED = "reserved"
    ALREADY_RESERVED = "already_reserved"


class EnterOutcome(Enum):
    OK = "ok"
    ALREADY_ENTERED = "already_entered"
    ACCOUNT_NOT_FOUND = "account_not_found"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    TRANSIENT_FAILURE = "transient_failure"


class DrawOutcome(Enum):
    DRAWN = "drawn"
    NO_ENTRIES = "no_entries"
    ALREADY_DRAWN = "already_drawn"


@dataclass
class EnterResult:
    """Outcome of one entry attempt"""
    outcome: EnterOutcome
    account_ref: Optional[str] = None
    window: Optional[date] = None
    new_balance: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is EnterOutcome.OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.ok,
            'code': self.outcome.value,
            'account_ref': self.account_ref,
            'window': self.window.isoformat() if self.window else None,
            'new_balance': self.new_balance,
            'error': self.error,
        }


@dataclass
class DrawResult:
    """A persisted winner row"""
    id: str
    window: date
    winning_account_ref: str
    prize: str
    prize_index: int
    total_entries: int
    server_seed: str
    client_seed: str
    proof_hash: str
    shipped: bool = False
    triggered_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['window'] = self.window.isoformat()
        return data


@dataclass
class DrawRun:
    """Outcome of run_draw: a DrawResult only when outcome is DRAWN"""
    outcome: DrawOutcome
    window: date
    result: Optional[DrawResult] = None
    existing: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.outcome is DrawOutcome.DRAWN,
            'code': self.outcome.value,
            'window': self.window.isoformat(),
            'winner': self.result.to_dict() if self.result else None,
            'existing': self.existing,
        }


@dataclass
class AutoEntryResult:
    """Per-account row of a batch report"""
    identifier: str
    status: str  # 'succeeded', 'failed', 'skipped'
    reason: Optional[str] = None
    account_ref: Optional[str] = None
    new_balance: Optional[int] = None


@dataclass
class BatchReport:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[AutoEntryResult] = field(default_factory=list)

    def add(self, result: AutoEntryResult):
        self.processed += 1
        if result.status == 'succeeded':
            self.succeeded += 1
        elif result.status == 'failed':
            self.failed += 1
        else:
            self.skipped += 1
        self.results.append(result)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'processed': self.processed,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
            'results': [asdict(r) for r in self.results],
        }
