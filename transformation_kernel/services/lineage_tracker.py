"""
LineageTracker -- append-only input -> output attribution edges.

Responsibility:
    Persists the N x M edges computed by the lineage attribution engine and
    answers "where did this output come from" / "where did this input go".

Architecture position:
    Kernel > Services -- imperative shell.  Flushes, never commits.  The
    execution saga writes edges in the same transaction that finalizes the
    order's cost totals.

Invariants enforced:
    - One edge per (input_line_id, output_line_id); a second write for the
      same pair fails at the storage layer.
    - Edges are never updated or deleted (db/immutability.py).
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select

from transformation_kernel.domain.dtos import LineageEdge, LineageEdgeSpec
from transformation_kernel.logging_config import get_logger
from transformation_kernel.models.lineage import LineageEdgeModel
from transformation_kernel.services.base import BaseService

logger = get_logger("services.lineage_tracker")


class LineageTracker(BaseService[LineageEdgeModel]):
    """Writes and queries lineage edges."""

    def record_edges(
        self,
        order_id: UUID,
        edges: Sequence[LineageEdgeSpec],
        actor_id: UUID,
    ) -> list[LineageEdge]:
        rows = [
            LineageEdgeModel(
                order_id=order_id,
                input_line_id=spec.input_line_id,
                output_line_id=spec.output_line_id,
                input_quantity_used=spec.input_quantity_used,
                output_quantity_from=spec.output_quantity_from,
                cost_attributed=spec.cost_attributed,
                attribution_basis=spec.attribution_basis.value,
                created_by_id=actor_id,
            )
            for spec in edges
        ]
        self.session.add_all(rows)
        self.session.flush()

        logger.info(
            "lineage_edges_recorded",
            extra={
                "order_id": str(order_id),
                "edge_count": len(rows),
                "bases": sorted({spec.attribution_basis.value for spec in edges}),
            },
        )
        return [row.to_dto() for row in rows]

    def _query(self, *criteria) -> list[LineageEdge]:
        rows = self.session.execute(
            select(LineageEdgeModel)
            .where(*criteria)
            .order_by(LineageEdgeModel.output_line_id, LineageEdgeModel.input_line_id)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def edges_for_order(self, order_id: UUID) -> list[LineageEdge]:
        return self._query(LineageEdgeModel.order_id == order_id)

    def edges_for_output(self, output_line_id: UUID) -> list[LineageEdge]:
        """Backward trace: which inputs an output line was made from."""
        return self._query(LineageEdgeModel.output_line_id == output_line_id)

    def edges_for_input(self, input_line_id: UUID) -> list[LineageEdge]:
        """Forward trace: which outputs an input line went into."""
        return self._query(LineageEdgeModel.input_line_id == input_line_id)
