from __future__ import annotations

from typing import Dict, Any, List

import numpy as np


def edges_to_adj(nodes: List[str], edges: List[Dict[str, Any]]) -> np.ndarray:
    """Convert edge list to adjacency matrix (d x d) in node order.

    Undirected edges ("--") set both entries.
    """
    idx = {n: i for i, n in enumerate(nodes)}
    d = len(nodes)
    A = np.zeros((d, d), dtype=int)
    for e in edges:
        u = e.get("from")
        v = e.get("to")
        if u in idx and v in idx:
            A[idx[u], idx[v]] = 1
            if e.get("type") == "--":
                A[idx[v], idx[u]] = 1
    np.fill_diagonal(A, 0)
    return A


def compute_shd(
    nodes: List[str],
    edges_hat: List[Dict[str, Any]],
    edges_true: List[Dict[str, Any]],
    *,
    double_for_anticausal: bool = True,
) -> int:
    """Structural Hamming Distance (SHD) between two graphs.

    Parameters
    ----------
    double_for_anticausal:
        - True (default): a reversed edge counts as 2 mistakes (one missing + one extra).
        - False: a reversed edge counts as 1 mistake.
    """
    A_hat = edges_to_adj(nodes, edges_hat)
    A_true = edges_to_adj(nodes, edges_true)

    if double_for_anticausal:
        # L1 distance on adjacency matrices (reversal -> 2)
        return int(np.abs(A_true - A_hat).sum())

    mistakes = 0
    d = len(nodes)
    for i in range(d):
        for j in range(i + 1, d):
            if (A_hat[i, j], A_hat[j, i]) != (A_true[i, j], A_true[j, i]):
                mistakes += 1
    return mistakes


def _edge_set(edges: List[Dict[str, Any]]) -> set[tuple[str, str]]:
    s: set[tuple[str, str]] = set()
    for e in edges:
        u, v = str(e.get("from")), str(e.get("to"))
        s.add((u, v))
        if e.get("type") == "--":
            s.add((v, u))
    return s


def _prf(pred_set: set, true_set: set) -> Dict[str, Any]:
    tp = len(pred_set & true_set)
    fp = len(pred_set - true_set)
    fn = len(true_set - pred_set)

    precision = tp / len(pred_set) if pred_set else 0.0
    recall = tp / len(true_set) if true_set else 0.0
    f1 = 2 * precision * recall / (precision + recall) if (precision + recall) > 0 else 0.0

    return {
        "precision": float(precision),
        "recall": float(recall),
        "f1": float(f1),
        "tp": int(tp),
        "fp": int(fp),
        "fn": int(fn),
        "n_pred": int(len(pred_set)),
        "n_true": int(len(true_set)),
    }


def compute_edge_metrics(
    edges_hat: List[Dict[str, Any]],
    edges_true: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """Precision / recall / F1 over directed edges."""
    return _prf(_edge_set(edges_hat), _edge_set(edges_true))


def compute_skeleton_metrics(
    edges_hat: List[Dict[str, Any]],
    edges_true: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """Precision / recall / F1 over adjacencies, ignoring orientation."""
    def adj(edges):
        return {frozenset((str(e.get("from")), str(e.get("to")))) for e in edges}
    return _prf(adj(edges_hat), adj(edges_true))


def compute_graph_metrics(
    nodes: List[str],
    edges_hat: List[Dict[str, Any]],
    edges_true: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """SHD plus directed and skeleton edge metrics."""
    metrics: Dict[str, Any] = {
        "shd": compute_shd(nodes, edges_hat, edges_true, double_for_anticausal=True),
        "shd_reversal_one": compute_shd(nodes, edges_hat, edges_true, double_for_anticausal=False),
    }
    metrics.update(compute_edge_metrics(edges_hat, edges_true))
    metrics["skeleton"] = compute_skeleton_metrics(edges_hat, edges_true)
    return metrics


def compare_structures(
    edges_a: List[Dict[str, Any]],
    edges_b: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """Directed edges only in A, only in B, and reversed between A and B.

    Used to see what a constraint set changed: A = unconstrained, B = constrained.
    """
    a, b = _edge_set(edges_a), _edge_set(edges_b)
    reversed_ = sorted(e for e in a - b if (e[1], e[0]) in b)
    rev_set = set(reversed_)
    return {
        "only_in_a": sorted(e for e in a - b if e not in rev_set),
        "only_in_b": sorted(e for e in b - a if (e[1], e[0]) not in rev_set),
        "reversed": reversed_,
        "n_a": len(a),
        "n_b": len(b),
        "n_removed": len(a) - len(b),
    }
