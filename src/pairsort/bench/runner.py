"""
Experiment runner: simulates ranking sessions across item counts from a YAML config.

Usage (from repo root):
    pairsort-bench experiments/configs/01_question_counts.yaml
    python -m pairsort.bench.runner experiments/configs/01_question_counts.yaml

Outputs in a new run directory:
    - config_resolved.yaml    # the config we actually used
    - meta.json               # environment info (python, numpy, cpu/ram, git commit, reference order)
    - results.jsonl           # one JSON line per simulated session
    - summary.csv             # per (scenario, n): median questions, estimate, ratio
    - (console) rich/tqdm summaries

Config keys (all required unless noted):
    experiment_name: str
    output_dir: str
    seed: int
    repeats: int                  # sessions per (scenario, n)
    dataset: {dist: ..., params: {...}}
    sizes: [int, ...]
    scenarios:                    # each is one simulated-user behaviour
      - name: str
        noise: float              # optional, default 0.0
        undo_rate: float          # optional, default 0.0
        shuffle: bool             # optional, default false
        history_limit: int|null   # optional

Design notes:
- For each size n and repeat we generate ONE item set and hand the same
  items and hidden scores to every scenario.
- A failed session is recorded and the remaining sizes for that scenario
  are skipped.
"""

from __future__ import annotations

import argparse
import datetime as _dt
import json
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
import psutil
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from tqdm import tqdm

from ..datasets import make_items
from ..validate import ORACLE_NAME
from .measure import simulate_session

_console = Console()
log = logging.getLogger(__name__)

REQUIRED_KEYS = ["experiment_name", "output_dir", "seed", "repeats", "dataset", "sizes", "scenarios"]
SUMMARY_COLUMNS = [
    "scenario",
    "n",
    "sessions",
    "median_questions",
    "max_questions",
    "median_estimate",
    "median_ratio",
    "median_undos",
    "reference_match_rate",
    "median_ms",
]


# ------------------------- data structures ------------------------- #


@dataclass(frozen=True)
class ScenarioSpec:
    name: str
    noise: float = 0.0
    undo_rate: float = 0.0
    shuffle: bool = False
    history_limit: Optional[int] = None


# ------------------------- helpers: IO & meta ------------------------- #


def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _write_yaml(obj: Dict[str, Any], path: Path) -> None:
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(obj, f, sort_keys=False)


def _append_jsonl(obj: Dict[str, Any], path: Path) -> None:
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(obj, separators=(",", ":"), ensure_ascii=False))
        f.write("\n")


def _timestamp() -> str:
    return _dt.datetime.now().strftime("%Y%m%d_%H%M%S")


def _ensure_run_dir(base_dir: Path, experiment_name: str) -> Path:
    base_dir.mkdir(parents=True, exist_ok=True)
    run_dir = base_dir / f"{_timestamp()}_{experiment_name}"
    suffix = 1
    while run_dir.exists():
        suffix += 1
        run_dir = base_dir / f"{_timestamp()}_{experiment_name}_{suffix}"
    run_dir.mkdir(parents=False, exist_ok=False)
    return run_dir


def _git_commit_short() -> Optional[str]:
    try:
        out = subprocess.check_output(["git", "rev-parse", "--short", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode("utf-8").strip()
    except (OSError, subprocess.CalledProcessError):
        return None


def _gather_meta() -> Dict[str, Any]:
    import platform
    meta = {
        "python": platform.python_version(),
        "numpy": np.__version__,
        "pandas": pd.__version__,
        "psutil": psutil.__version__,
        "git_commit": _git_commit_short(),
        "machine": {
            "cpu": platform.processor() or platform.machine(),
            "cores_logical": psutil.cpu_count(logical=True),
            "cores_physical": psutil.cpu_count(logical=False),
            "ram_gb": round(psutil.virtual_memory().total / (1024**3), 2),
            "platform": platform.platform(),
        },
        "start_time": _dt.datetime.now().isoformat(timespec="seconds"),
        "pid": os.getpid(),
        "reference_order": ORACLE_NAME,
        "cwd": str(Path.cwd()),
    }
    return meta


def _resolve_scenarios(cfg_scenarios: List[Dict[str, Any]]) -> List[ScenarioSpec]:
    specs: List[ScenarioSpec] = []
    seen = set()
    for entry in cfg_scenarios:
        if not isinstance(entry, dict):
            raise ValueError("Each scenario must be a mapping")
        name = entry.get("name", None)
        if not name or not isinstance(name, str):
            raise ValueError("Each scenario must have a string 'name' field")
        if name in seen:
            raise ValueError(f"Duplicate scenario name in config: {name}")
        seen.add(name)

        noise = float(entry.get("noise", 0.0))
        undo_rate = float(entry.get("undo_rate", 0.0))
        if not (0.0 <= noise <= 1.0):
            raise ValueError(f"Scenario '{name}': noise must be in [0.0, 1.0]")
        if not (0.0 <= undo_rate < 1.0):
            raise ValueError(f"Scenario '{name}': undo_rate must be in [0.0, 1.0)")
        history_limit = entry.get("history_limit", None)
        if history_limit is not None and (not isinstance(history_limit, int) or history_limit < 1):
            raise ValueError(f"Scenario '{name}': history_limit must be a positive int or null")

        specs.append(
            ScenarioSpec(
                name=name,
                noise=noise,
                undo_rate=undo_rate,
                shuffle=bool(entry.get("shuffle", False)),
                history_limit=history_limit,
            )
        )
    if not specs:
        raise ValueError("Config 'scenarios' must list at least one scenario")
    return specs


def _aggregate_summary(jsonl_path: Path) -> pd.DataFrame:
    if not jsonl_path.exists():
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    df = pd.read_json(jsonl_path, lines=True)
    if df.empty or "status" not in df:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    df = df[df["status"] == "ok"].copy()
    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    df["ratio"] = df["oracle_calls"] / df["initial_estimate"].clip(lower=1)
    df["ms"] = df["elapsed_ns"] / 1e6
    df["ref_ok"] = df["matches_reference"].map(lambda v: np.nan if pd.isna(v) else float(bool(v)))

    out = (
        df.groupby(["scenario", "n"], as_index=False)
        .agg(
            sessions=("oracle_calls", "count"),
            median_questions=("oracle_calls", "median"),
            max_questions=("oracle_calls", "max"),
            median_estimate=("initial_estimate", "median"),
            median_ratio=("ratio", "median"),
            median_undos=("undos", "median"),
            reference_match_rate=("ref_ok", "mean"),
            median_ms=("ms", "median"),
        )
    )
    return out[SUMMARY_COLUMNS].sort_values(["scenario", "n"], ignore_index=True)


def _print_rich_summary(summary: pd.DataFrame) -> None:
    table = Table(title="Questions asked vs. estimate (medians)")
    table.add_column("Scenario", style="bold")
    table.add_column("n", justify="right")
    table.add_column("questions", justify="right")
    table.add_column("estimate", justify="right")
    table.add_column("ratio", justify="right")
    table.add_column("undos", justify="right")
    table.add_column("ref match", justify="right")

    if summary.empty:
        _console.print("[yellow](no successful sessions)[/yellow]")
        return

    for row in summary.itertuples(index=False):
        match = "n/a" if pd.isna(row.reference_match_rate) else f"{row.reference_match_rate:.0%}"
        table.add_row(
            f"[bold]{row.scenario}[/]",
            str(int(row.n)),
            f"{row.median_questions:.0f}",
            f"{row.median_estimate:.0f}",
            f"{row.median_ratio:.2f}",
            f"{row.median_undos:.0f}",
            match,
        )
    _console.print()
    _console.print(table)
    _console.print()


# ------------------------- core runner ------------------------- #


def run_experiment(config_path: Path) -> Path:
    cfg = _load_yaml(config_path)
    if not isinstance(cfg, dict):
        raise ValueError(f"Config must be a mapping: {config_path}")

    missing = [k for k in REQUIRED_KEYS if k not in cfg]
    if missing:
        raise ValueError(f"Missing required config keys: {missing}")

    experiment_name: str = str(cfg["experiment_name"])
    output_dir = Path(cfg["output_dir"])
    sizes: List[int] = [int(n) for n in cfg["sizes"]]
    repeats: int = int(cfg["repeats"])
    dataset_spec: Dict[str, Any] = dict(cfg["dataset"])
    scenarios = _resolve_scenarios(list(cfg["scenarios"]))

    if not sizes or any(n < 0 for n in sizes):
        raise ValueError("Config 'sizes' must be a non-empty list of nonnegative integers")
    if repeats < 1:
        raise ValueError("Config 'repeats' must be >= 1")

    run_dir = _ensure_run_dir(output_dir, experiment_name)
    results_path = run_dir / "results.jsonl"
    summary_path = run_dir / "summary.csv"
    meta_path = run_dir / "meta.json"
    cfg_resolved_path = run_dir / "config_resolved.yaml"

    _write_yaml(cfg, cfg_resolved_path)
    with meta_path.open("w", encoding="utf-8") as f:
        json.dump(_gather_meta(), f, indent=2)

    rng = np.random.default_rng(int(cfg["seed"]))
    per_scenario_skip = {s.name: False for s in scenarios}

    _console.print(f"[bold green]Run directory:[/bold green] {run_dir}")
    _console.print(f"[bold]Experiment:[/bold] {experiment_name}")
    _console.print(f"[bold]Scenarios:[/bold] {', '.join(s.name for s in scenarios)}")

    for n in tqdm(sizes, desc="Sizes", unit="n"):
        for trial in range(repeats):
            items, scores = make_items(n, dataset_spec, rng)
            for scen in scenarios:
                if per_scenario_skip[scen.name]:
                    continue
                res = simulate_session(
                    items=items,
                    scores=scores,
                    noise=scen.noise,
                    undo_rate=scen.undo_rate,
                    rng=rng,
                    shuffle=scen.shuffle,
                    history_limit=scen.history_limit,
                )
                _append_jsonl({"scenario": scen.name, "trial": trial, **res}, results_path)
                if res["status"] != "ok":
                    log.warning("scenario %s failed at n=%d: %s", scen.name, n, res["error"])
                    per_scenario_skip[scen.name] = True

    summary_df = _aggregate_summary(results_path)
    summary_df.to_csv(summary_path, index=False)
    _print_rich_summary(summary_df)

    _console.print("[bold green]Done.[/bold green] Wrote:")
    for path in (results_path, summary_path, meta_path, cfg_resolved_path):
        _console.print(f" - {path}")
    return run_dir


# ------------------------- CLI ------------------------- #


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Simulate interactive ranking sessions from a YAML config.")
    p.add_argument("config", type=str, help="Path to YAML experiment config")
    p.add_argument("-v", "--verbose", action="store_true", help="Log engine activity at DEBUG level")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=_console, show_path=False)],
    )
    config_path = Path(args.config).resolve()
    if not config_path.exists():
        raise SystemExit(f"Config file not found: {config_path}")
    try:
        run_experiment(config_path)
    except Exception as e:
        _console.print(f"[bold red]Runner failed:[/bold red] {e!r}")
        raise


if __name__ == "__main__":
    main()
