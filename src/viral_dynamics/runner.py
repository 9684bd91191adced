#!/usr/bin/env python3
# src/viral_dynamics/runner.py - command-line runner

import argparse
import json
import logging
import re
import sys
import time
from typing import List, Optional

import numpy as np
import pandas as pd

from .model.dataset import ViralLoadData
from .model.parameters import ModelParameters
from .model.priors import PriorConfig
from .model.trajectory import ODESolveError, SolverConfig, predict_virus_load
from .simulate import SimConfig, simulate_dataset, write_dataset

logger = logging.getLogger(__name__)


# Parser for time grids like 1,2,3
def parse_float_list(s: Optional[str]) -> List[float]:
    if not s:
        return []
    return [float(x) for x in re.split(r"[,\s;]+", s.strip()) if x]


def load_priors(path: Optional[str]) -> PriorConfig:
    return PriorConfig.from_json(path) if path else PriorConfig()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Viral dynamics ODE model runner")
    p.add_argument("--log-level", default="INFO", metavar="LEVEL",
                   help="Logging level (default: INFO)")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- shared solver options ----------
    solver_p = argparse.ArgumentParser(add_help=False)
    solver_p.add_argument("--rtol", type=float, default=1e-6, help="Solver relative tolerance (default: 1e-6)")
    solver_p.add_argument("--atol", type=float, default=1e-8, help="Solver absolute tolerance (default: 1e-8)")
    solver_p.add_argument("--max-num-steps", type=int, default=100_000,
                          help="Give up on a solve after this many steps (default: 100000)")

    # ---------- simulate ----------
    sim_p = sub.add_parser("simulate", parents=[solver_p], help="Write a synthetic viral-load dataset")
    sim_p.add_argument("--individuals", type=int, default=6, metavar="N",
                       help="Number of individuals (default: 6)")
    sim_p.add_argument("--doses", type=int, default=2, metavar="D",
                       help="Number of dose groups (default: 2)")
    sim_p.add_argument("--times", type=str, default="1,2,3,4,5,6,7", metavar="LIST",
                       help="Observation times shared by all individuals (default: '1,2,3,4,5,6,7')")
    sim_p.add_argument("--tstart", type=float, default=0.0)
    sim_p.add_argument("--sigma", type=float, default=0.5,
                       help="Observation noise sd (default: 0.5)")
    sim_p.add_argument("--priors", default=None, metavar="JSON",
                       help="Prior hyperparameters as JSON (default: built-in)")
    sim_p.add_argument("--seed", type=int, default=42, metavar="SEED",
                       help="RNG seed for reproducibility (default: 42)")
    sim_p.add_argument("--out", default="data/simulated_viral_load.csv", metavar="PATH",
                       help="Output CSV path (default: data/simulated_viral_load.csv)")

    # ---------- fit ----------
    fit_p = sub.add_parser("fit", parents=[solver_p], help="Sample the posterior with NUTS")
    fit_p.add_argument("--data", required=True, metavar="PATH",
                       help="CSV with columns id, time, outcome, dose_level")
    fit_p.add_argument("--tstart", type=float, default=0.0)
    fit_p.add_argument("--doses", type=int, default=None, metavar="D",
                       help="Number of dose groups (default: largest dose_level)")
    fit_p.add_argument("--priors", default=None, metavar="JSON")
    fit_p.add_argument("--draws", type=int, default=1000)
    fit_p.add_argument("--tune", type=int, default=1000)
    fit_p.add_argument("--chains", type=int, default=4)
    fit_p.add_argument("--cores", type=int, default=1)
    fit_p.add_argument("--target-accept", type=float, default=0.8)
    fit_p.add_argument("--seed", type=int, default=42)
    fit_p.add_argument("--out-dir", default="output", metavar="DIR",
                       help="Directory for summary.csv and draws.csv (default: output)")

    # ---------- predict ----------
    pred_p = sub.add_parser("predict", parents=[solver_p],
                            help="Deterministic virus-load trajectory for one individual")
    pred_p.add_argument("--times", type=str, default="0,1,2,3,4,5,6,7", metavar="LIST")
    pred_p.add_argument("--tstart", type=float, default=0.0)
    for name in ("a0", "b0", "g0", "e0"):
        pred_p.add_argument(f"--{name}", type=float, default=0.0, help=f"log rate {name} (default: 0)")
    pred_p.add_argument("--V0", type=float, default=float(np.log(10.0)),
                        help="Initial log virus load (default: log(10))")
    pred_p.add_argument("--json", action="store_true", help="Output as JSON")

    return p


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))
    t0 = time.perf_counter()
    solver = SolverConfig(rtol=args.rtol, atol=args.atol, max_num_steps=args.max_num_steps)

    if args.cmd == "simulate":
        cfg = SimConfig(
            n_individuals=args.individuals,
            n_dose=args.doses,
            times=tuple(parse_float_list(args.times)),
            tstart=args.tstart,
            sigma=args.sigma,
            priors=load_priors(args.priors),
            seed=args.seed,
            out_path=args.out,
        )
        data, _ = simulate_dataset(cfg, solver=solver)
        write_dataset(data, cfg.out_path)
        print("Simulation done ->", args.out)

    elif args.cmd == "fit":
        # imported here so simulate/predict work without the inference extra
        from .inference import fit as inference

        data = ViralLoadData.from_frame(pd.read_csv(args.data), tstart=args.tstart, n_dose=args.doses)
        priors = load_priors(args.priors)
        cfg = inference.FitConfig(
            draws=args.draws,
            tune=args.tune,
            chains=args.chains,
            cores=args.cores,
            target_accept=args.target_accept,
            seed=args.seed,
            out_dir=args.out_dir,
        )
        _, idata = inference.fit_model(data, priors, cfg, solver)
        summary_path, draws_path = inference.write_outputs(idata, data, priors, cfg.out_dir, seed=cfg.seed)
        print("Summary ->", summary_path)
        print("Draws ->", draws_path)

    elif args.cmd == "predict":
        times = parse_float_list(args.times)
        if not times:
            parser.error("--times needs at least one value")
        data = ViralLoadData.from_arrays(
            outcome=np.zeros(len(times)),
            time=times,
            n_obs=[len(times)],
            dose_level=[1],
            tstart=args.tstart,
        )
        params = ModelParameters(a0=args.a0, b0=args.b0, g0=args.g0, e0=args.e0, V0=args.V0, sigma=1.0)
        try:
            virus = predict_virus_load(params, data, solver)
        except ODESolveError as exc:
            print("ODE solve failed:", exc, file=sys.stderr)
            sys.exit(2)
        if args.json:
            print(json.dumps({"time": times, "virus": virus.tolist()}, indent=2))
        else:
            for t, v in zip(times, virus):
                print(f"{t:10.4f}  {v:.6f}")

    logger.info("Done in %.2fs", time.perf_counter() - t0)


if __name__ == "__main__":
    main()
