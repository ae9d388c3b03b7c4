from __future__ import annotations

from idlecore.simulator import SimulationReport


def plot_simulation(
    report: SimulationReport,
    output_path: str | None = None,
) -> None:
    """Plot balances, building counts and daily purchases of a simulated player.

    Requires matplotlib (optional dependency).
    """
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError(
            "matplotlib is required for visualization. "
            "Install with: pip install idlecore[viz]"
        )

    fig, axes = plt.subplots(1, 3, figsize=(16, 5))
    fig.suptitle(f"idlecore simulation: {report.player_id}, {report.days} days", fontsize=14)

    # Balances (log scale)
    ax1 = axes[0]
    for name in report.resource_names():
        series = report.resource_series(name)
        if series:
            days, values = zip(*series)
            ax1.plot(days, [max(v, 1) for v in values], label=name)
    ax1.set_yscale("log")
    ax1.set_xlabel("Day")
    ax1.set_ylabel("Balance")
    ax1.set_title("Resources")
    ax1.legend(fontsize=8)
    ax1.grid(True, alpha=0.3)

    # Buildings owned
    ax2 = axes[1]
    buildings = sorted({b for s in report.history for b in s.buildings})
    for name in buildings:
        days = [s.day for s in report.history]
        counts = [s.buildings.get(name, 0) for s in report.history]
        if any(counts):
            ax2.step(days, counts, where="post", label=name)
    ax2.set_xlabel("Day")
    ax2.set_ylabel("Owned")
    ax2.set_title("Buildings")
    ax2.legend(fontsize=8)
    ax2.grid(True, alpha=0.3)

    # Purchases per day
    ax3 = axes[2]
    if report.history:
        ax3.bar(
            [s.day for s in report.history],
            [len(s.purchases) for s in report.history],
            alpha=0.7,
        )
    ax3.set_xlabel("Day")
    ax3.set_ylabel("Purchases")
    ax3.set_title("Purchases per Day")
    ax3.grid(True, alpha=0.3)

    plt.tight_layout()

    if output_path:
        plt.savefig(output_path, dpi=150)
    else:
        plt.show()
