# mr_engine/examples/multirate_systems.py
"""Two canonical multirate problems solved with every mr_engine scheme.

1) A closed reaction network with a fast equilibrium A <-> B and a slow
   conversion B -> C. C is the slow partition, (A, B) the fast one, and
   A + B + C = 1 for all time.
2) A slow and a fast harmonic oscillator with weak linear coupling. The
   mechanical energy of the pair stays nearly constant.

For each problem the script solves with ExplicitMRK, CompoundFastSlow and
Extrapolated, prints the invariant drift and the evaluation counts, and saves
plots to disk (no interactive windows).
"""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from mr_engine import (
    CompoundFastSlow,
    ExplicitMRK,
    Extrapolated,
    FunctionSystem,
    MultirateMethod,
    MultirateOptions,
    Trajectory,
    construct_solver,
)

_OUTPUT_DIR = Path(__file__).resolve().parent / "output" / "multirate"


def reaction_system(
    *, k_forward: float, k_backward: float, k_slow: float
) -> FunctionSystem:
    """Build the A <-> B -> C network on the state [C, A, B].

    Args:
        k_forward: Rate of A -> B.
        k_backward: Rate of B -> A.
        k_slow: Rate of B -> C.

    Returns:
        FunctionSystem with one slow and two fast components.
    """

    def slow(_t: float, _y_slow: np.ndarray, y_fast: np.ndarray) -> np.ndarray:
        return np.array([k_slow * y_fast[1]])

    def fast(_t: float, _y_slow: np.ndarray, y_fast: np.ndarray) -> np.ndarray:
        a, b = y_fast
        return np.array(
            [
                -k_forward * a + k_backward * b,
                k_forward * a - k_backward * b - k_slow * b,
            ]
        )

    return FunctionSystem(n_slow=1, n_fast=2, slow=slow, fast=fast)


def oscillator_system(
    *, omega_slow: float, omega_fast: float, coupling: float
) -> FunctionSystem:
    """Build the coupled oscillator pair on [x_slow, v_slow, x_fast, v_fast].

    Args:
        omega_slow: Slow angular frequency.
        omega_fast: Fast angular frequency.
        coupling: Linear coupling strength.

    Returns:
        FunctionSystem with two slow and two fast components.
    """

    def slow(_t: float, y_slow: np.ndarray, y_fast: np.ndarray) -> np.ndarray:
        return np.array(
            [y_slow[1], -(omega_slow**2) * y_slow[0] + coupling * y_fast[0]]
        )

    def fast(_t: float, y_slow: np.ndarray, y_fast: np.ndarray) -> np.ndarray:
        return np.array(
            [y_fast[1], -(omega_fast**2) * y_fast[0] + coupling * y_slow[0]]
        )

    return FunctionSystem(n_slow=2, n_fast=2, slow=slow, fast=fast)


def oscillator_energy(
    y: np.ndarray, *, omega_slow: float, omega_fast: float
) -> np.ndarray:
    """Uncoupled mechanical energy for every row of a (n, 4) state history.

    Args:
        y: State history.
        omega_slow: Slow angular frequency.
        omega_fast: Fast angular frequency.

    Returns:
        Energy per sample, shape (n,).
    """
    kinetic = 0.5 * (y[:, 1] ** 2 + y[:, 3] ** 2)
    potential = 0.5 * (omega_slow**2 * y[:, 0] ** 2 + omega_fast**2 * y[:, 2] ** 2)
    return kinetic + potential


def save_plot(
    runs: dict[str, Trajectory],
    *,
    labels: list[str],
    title: str,
    out_path: Path,
) -> None:
    """Save every component of every run to one image, one panel per scheme.

    Args:
        runs: Trajectories keyed by scheme label.
        labels: Component labels in state order.
        title: Figure title.
        out_path: Output path for the saved figure.
    """
    fig, axes = plt.subplots(len(runs), 1, figsize=(8, 3 * len(runs)), sharex=True)
    for ax, (name, traj) in zip(np.atleast_1d(axes), runs.items(), strict=True):
        for j, label in enumerate(labels):
            ax.plot(traj.t, traj.y[:, j], label=label)
        ax.set_title(f"{name} ({traj.n_steps} macro steps)")
        ax.grid(visible=True)
        ax.legend(loc="best")

    fig.suptitle(title)
    axes_last = np.atleast_1d(axes)[-1]
    axes_last.set_xlabel("Time")
    fig.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=150)
    plt.close(fig)


def _solve_all(
    system: FunctionSystem,
    methods: dict[str, MultirateMethod],
    *,
    macro_step: float,
    t_end: float,
    y0: np.ndarray,
    timescale_ratio: float,
) -> dict[str, Trajectory]:
    """Solve one system with several method variants.

    Args:
        system: Multirate system.
        methods: Method variants keyed by label.
        macro_step: Macro step size shared by all runs.
        t_end: End time.
        y0: Initial state.
        timescale_ratio: Separation hint passed to every run.

    Returns:
        Completed trajectories keyed by label.
    """
    runs: dict[str, Trajectory] = {}
    for name, method in methods.items():
        options = MultirateOptions(
            method=method,
            macro_step=macro_step,
            max_steps=100_000,
            timescale_ratio=timescale_ratio,
        )
        traj = construct_solver(options).solve(system, (0.0, t_end), y0)
        traj.raise_for_status()
        print(  # noqa: T201
            f"  {name:<14} steps={traj.n_steps:>6} "
            f"slow evals={traj.n_slow_evals:>7} fast evals={traj.n_fast_evals:>8} "
            f"wall={traj.wall_time:.3f}s"
        )
        runs[name] = traj
    return runs


def main() -> None:
    """Run both problems and save one figure per problem.

    Files are written to: examples/output/multirate/
    """
    # ---------------------------------------------------------------------
    # (1) Reaction network: fast equilibrium, slow product formation
    # ---------------------------------------------------------------------
    k_forward, k_backward, k_slow = 50.0, 40.0, 1.0
    reactions = reaction_system(
        k_forward=k_forward, k_backward=k_backward, k_slow=k_slow
    )
    print("reaction network")  # noqa: T201
    reaction_runs = _solve_all(
        reactions,
        {
            "ExplicitMRK": ExplicitMRK(macro_steps=4, micro_steps=25),
            "CompoundFastSlow": CompoundFastSlow(fast_method="implicit-euler"),
            "Extrapolated": Extrapolated(base_ratio=25, levels=3),
        },
        macro_step=0.01,
        t_end=2.0,
        y0=np.array([0.0, 1.0, 0.0]),
        timescale_ratio=(k_forward + k_backward) / k_slow,
    )
    for name, traj in reaction_runs.items():
        drift = float(np.max(np.abs(traj.y.sum(axis=1) - 1.0)))
        print(f"  {name:<14} max |A+B+C-1| = {drift:.3e}")  # noqa: T201

    save_plot(
        reaction_runs,
        labels=["C (slow)", "A (fast)", "B (fast)"],
        title="A <-> B -> C",
        out_path=_OUTPUT_DIR / "reaction_network.png",
    )

    # ---------------------------------------------------------------------
    # (2) Weakly coupled oscillators over 20 fast periods
    # ---------------------------------------------------------------------
    omega_slow, omega_fast, coupling = 1.0, 20.0, 0.02
    oscillators = oscillator_system(
        omega_slow=omega_slow, omega_fast=omega_fast, coupling=coupling
    )
    print("coupled oscillators")  # noqa: T201
    oscillator_runs = _solve_all(
        oscillators,
        {
            "ExplicitMRK": ExplicitMRK(macro_steps=4, micro_steps=20),
            "CompoundFastSlow": CompoundFastSlow(fast_substeps=40),
            "Extrapolated": Extrapolated(base_ratio=20, levels=3),
        },
        macro_step=0.005,
        t_end=20.0 * 2.0 * np.pi / omega_fast,
        y0=np.array([1.0, 0.0, 0.1, 0.0]),
        timescale_ratio=omega_fast / omega_slow,
    )
    for name, traj in oscillator_runs.items():
        energy = oscillator_energy(traj.y, omega_slow=omega_slow, omega_fast=omega_fast)
        drift = float(np.max(np.abs(energy - energy[0])) / energy[0])
        print(f"  {name:<14} relative energy drift = {drift:.3e}")  # noqa: T201

    save_plot(
        oscillator_runs,
        labels=["x_slow", "v_slow", "x_fast", "v_fast"],
        title=f"Coupled oscillators (omega_fast / omega_slow = {omega_fast:g})",
        out_path=_OUTPUT_DIR / "coupled_oscillators.png",
    )


if __name__ == "__main__":
    main()
