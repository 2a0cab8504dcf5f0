"""
Pseudocode Table
================
The pseudocode listing shown next to each simulation. Every line carries a
tag; generators refer to lines by tag and the step stores the resolved index.

Only the line count is relied upon by the engine (to bound `line_index`);
the text itself is presentation data.
"""
from __future__ import annotations

from metricsearch.model.errors import InvariantViolation
from metricsearch.model.run_config import MethodType, OperationType

_AESA_RANGE = (
    ("start", "AESA-Range(q, r):"),
    ("init", "  C ← X;  R ← ∅;  P ← ∅"),
    ("loop", "  while C ≠ ∅:"),
    ("pick", "    p ← argmin_{o ∈ C} LB(o);  C ← C \\ {p};  P ← P ∪ {p}"),
    ("compute", "    d ← d(q, p)"),
    ("compare", "    if d ≤ r: R ← R ∪ {p}"),
    ("scan", "    for o ∈ C:"),
    ("bound", "      LB(o) ← max_{p' ∈ P} |d(q, p') − D(p', o)|"),
    ("eliminate", "      if LB(o) > r: C ← C \\ {o}"),
    ("return", "  return R"),
)

_AESA_KNN = (
    ("start", "AESA-kNN(q, k):"),
    ("init", "  C ← X;  R ← ∅;  τ ← ∞;  P ← ∅"),
    ("loop", "  while C ≠ ∅:"),
    ("pick", "    p ← argmin_{o ∈ C} LB(o);  C ← C \\ {p};  P ← P ∪ {p}"),
    ("compute", "    d ← d(q, p)"),
    ("compare", "    if d ≤ τ: R ← k nearest of R ∪ {p};  τ ← d_k(R)"),
    ("scan", "    for o ∈ C:"),
    ("bound", "      LB(o) ← max_{p' ∈ P} |d(q, p') − D(p', o)|"),
    ("eliminate", "      if LB(o) > τ: C ← C \\ {o}"),
    ("return", "  return R"),
)

_AESA_INSERT = (
    ("start", "AESA-Insert(x):"),
    ("loop", "  for o ∈ X:"),
    ("compute", "    D(x, o) ← d(x, o)"),
    ("append", "  X ← X ∪ {x}"),
)

_LAESA_RANGE = (
    ("start", "LAESA-Range(q, r):"),
    ("init", "  R ← ∅"),
    ("pivots", "  for p ∈ P:"),
    ("compute_pivot", "    d ← d(q, p)"),
    ("compare_pivot", "    if d ≤ r: R ← R ∪ {p}"),
    ("objects", "  for o ∈ X \\ P:"),
    ("bound", "    LB(o) ← max_{p ∈ P} |d(q, p) − D(p, o)|"),
    ("eliminate", "    if LB(o) > r: continue"),
    ("compute", "    d ← d(q, o)"),
    ("compare", "    if d ≤ r: R ← R ∪ {o}"),
    ("return", "  return R"),
)

_LAESA_KNN = (
    ("start", "LAESA-kNN(q, k):"),
    ("init", "  R ← ∅;  τ ← ∞"),
    ("pivots", "  for p ∈ P:"),
    ("compute_pivot", "    d ← d(q, p)"),
    ("compare_pivot", "    if d ≤ τ: R ← k nearest of R ∪ {p};  τ ← d_k(R)"),
    ("bound", "  for o ∈ X \\ P:  LB(o) ← max_{p ∈ P} |d(q, p) − D(p, o)|"),
    ("objects", "  for o ∈ X \\ P by ascending LB(o):"),
    ("eliminate", "    if |R| = k and LB(o) > τ: discard all remaining;  break"),
    ("compute", "    d ← d(q, o)"),
    ("compare", "    if d ≤ τ: R ← k nearest of R ∪ {o};  τ ← d_k(R)"),
    ("return", "  return R"),
)

_LAESA_INSERT = (
    ("start", "LAESA-Insert(x):"),
    ("loop", "  for p ∈ P:"),
    ("compute", "    D(p, x) ← d(p, x)"),
    ("append", "  X ← X ∪ {x}"),
)

_MTREE_RANGE = (
    ("start", "MTree-Range(N, q, r):"),
    ("init", "  R ← ∅;  S ← [root]"),
    ("visit", "  for e ∈ N:"),
    ("parent", "    if |d(q, Op) − d(e, Op)| − r(e) > r: skip e"),
    ("compute", "    d ← d(q, e)"),
    ("routing", "    if N is routing and max(d − r(e), 0) > r: skip e"),
    ("descend", "    if N is routing: MTree-Range(child(e), q, r)"),
    ("leaf", "    if N is leaf and d > r: skip e"),
    ("include", "    if N is leaf: R ← R ∪ {e}"),
    ("return", "  return R"),
)

_MTREE_KNN = (
    ("start", "MTree-kNN(q, k):"),
    ("init", "  PR ← [root];  R ← ∅;  τ ← ∞"),
    ("pop", "  while PR ≠ ∅:  N ← region of PR with least dmin"),
    ("stop", "    if dmin(N) > τ: discard PR;  break"),
    ("visit", "    for e ∈ N:"),
    ("parent", "      if |d(q, Op) − d(e, Op)| − r(e) > τ: skip e"),
    ("compute", "      d ← d(q, e)"),
    ("enqueue", "      if N is routing and max(d − r(e), 0) ≤ τ: PR ← PR ∪ {child(e)}"),
    ("compare", "      if N is leaf and d ≤ τ: R ← k nearest of R ∪ {e};  τ ← d_k(R)"),
    ("return", "  return R"),
)

_MTREE_INSERT = (
    ("start", "MTree-Insert(N, x):"),
    ("routing", "  while N is routing:"),
    ("choose", "    e ← closest covering entry, else least enlargement;  r(e) ← max(r(e), d(x, e))"),
    ("descend", "    N ← child(e)"),
    ("store", "  store x in leaf N"),
    ("overflow", "  while |N| > M:"),
    ("split", "    promote farthest pair;  partition to nearer pivot;  N ← parent(N)"),
)

PSEUDOCODE: dict[tuple[MethodType, OperationType], tuple[tuple[str, str], ...]] = {
    (MethodType.AESA, OperationType.RANGE): _AESA_RANGE,
    (MethodType.AESA, OperationType.KNN): _AESA_KNN,
    (MethodType.AESA, OperationType.INSERT): _AESA_INSERT,
    (MethodType.LAESA, OperationType.RANGE): _LAESA_RANGE,
    (MethodType.LAESA, OperationType.KNN): _LAESA_KNN,
    (MethodType.LAESA, OperationType.INSERT): _LAESA_INSERT,
    (MethodType.MTREE, OperationType.RANGE): _MTREE_RANGE,
    (MethodType.MTREE, OperationType.KNN): _MTREE_KNN,
    (MethodType.MTREE, OperationType.INSERT): _MTREE_INSERT,
}


def _listing(method: MethodType, operation: OperationType) -> tuple[tuple[str, str], ...]:
    try:
        return PSEUDOCODE[(MethodType(method), OperationType(operation))]
    except (KeyError, ValueError):
        raise KeyError(f"No pseudocode for {method} {operation}.") from None


def get_pseudocode(method: MethodType, operation: OperationType) -> list[str]:
    return [text for _, text in _listing(method, operation)]


def get_line_count(method: MethodType, operation: OperationType) -> int:
    return len(_listing(method, operation))


def line_index(method: MethodType, operation: OperationType, tag: str) -> int:
    """Index of the line tagged `tag`."""
    for index, (line_tag, _) in enumerate(_listing(method, operation)):
        if line_tag == tag:
            return index
    raise InvariantViolation(f"Pseudocode of {method} {operation} has no line '{tag}'.")
