from pathlib import Path

from fold_kernel.config import build_integrator_state, load_scenario_config
from fold_kernel.core import history_to_dataframe, step_inexact_newton


def main():
    cfg_path = Path(__file__).resolve().parent / "wall_contact.yml"
    scenario = load_scenario_config(cfg_path)
    state = build_integrator_state(scenario)

    result = step_inexact_newton(
        state,
        delta_time=scenario.delta_time,
        line_search_scale=scenario.line_search_scale,
        freeze_damping=scenario.freeze_damping,
    )

    print(history_to_dataframe(result).to_string(index=False))
    print(f"converged={result.converged} iterations={result.iterations} beta={result.beta:.4g}")
    for dof, (p, v) in enumerate(zip(result.positions, result.velocities)):
        print(f"dof {dof}: z = {p.z:+.5f}, vz = {v.z:+.5f}")


if __name__ == "__main__":
    main()
