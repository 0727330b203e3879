# ledger.py
# Append-only history of submitted steps.
#
# Branches are index lists into the same step storage, never copies, so a
# branch query always reflects the steps exactly as they were ledgered.

from ot_debug.models import Step


class ThoughtLedger:
    def __init__(self) -> None:
        self._steps: list[Step] = []
        self._branches: dict[str, list[int]] = {}

    def append(self, step: Step) -> int:
        """Ledger `step` and register it with its branch, if any. Returns its index."""
        index = len(self._steps)
        self._steps.append(step)

        if step.is_branch:
            self._branches.setdefault(str(step.branch_id), []).append(index)

        return index

    def branch(self, branch_id: str) -> list[Step]:
        return [self._steps[i] for i in self._branches.get(branch_id, [])]

    def revisions_of(self, thought_number: int) -> list[Step]:
        return [s for s in self._steps if s.revises_thought == thought_number]

    @property
    def branch_ids(self) -> list[str]:
        return list(self._branches)

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    def __len__(self) -> int:
        return len(self._steps)
