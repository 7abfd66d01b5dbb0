import argparse
import logging
import sys

from haplomc.config import HaploMCConfig
from haplomc.exceptions import HaploMCError
from haplomc.runner import HaploMCRunner


def build_parser():
    parser = argparse.ArgumentParser(
        prog="haplomc",
        description="Haplotype phasing and imputation by stochastic search over parent haplotypes",
    )
    parser.add_argument('gl_file', help='Tab-separated genotype likelihood file (may be gzipped)')
    parser.add_argument('-b', '--burnin', type=int, default=None, help='Burn-in generations (56)')
    parser.add_argument('-m', '--sampling', type=int, default=None, help='Sampling generations (200)')
    parser.add_argument('-n', '--fold', type=int, default=None,
                        help='Sample size * fold of nested MH sampler iterations (2)')
    parser.add_argument('-C', '--cycles', type=int, default=None,
                        help="Cycles to estimate an individual's parents before updating (0 = fold * samples)")
    parser.add_argument('-E', '--estimator', type=int, default=None, choices=[0, 1, 2, 3],
                        help='0 MH with simulated annealing, 1 EMC, 2 AMH sample/sample, 3 AMH sample/haplotype')
    parser.add_argument('-p', '--parallel-chains', type=int, default=None,
                        help='Parallel chains for EMC (at least 2, default 5)')
    parser.add_argument('-H', '--ref-haps', default=None, help='Impute2 style haplotypes file')
    parser.add_argument('-L', '--legend', default=None, help='Impute2 style legend file')
    parser.add_argument('-k', '--kickstart', action='store_true',
                        help='Kickstart phasing by using only the reference panel in the first iteration')
    parser.add_argument('-e', '--trace-log', default=None, help='Write the proposal trace to this file')
    parser.add_argument('-o', '--output-dir', default=None, help='Output directory')
    parser.add_argument('--graph-out', default=None, help='Save the relationship graph to this file')
    parser.add_argument('--config', default=None, help='JSON configuration file')
    parser.add_argument('--seed', type=int, default=None, help='Random seed')
    parser.add_argument('--device', default=None, choices=['cpu', 'cuda'], help='Device to use')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def config_from_args(args) -> HaploMCConfig:
    """Command line values override the JSON configuration."""
    base = HaploMCConfig(config_path=args.config) if args.config else HaploMCConfig()
    settings = base.model_dump()

    settings['data']['gl_file'] = args.gl_file
    if args.legend is not None:
        settings['data']['legend_file'] = args.legend
    if args.ref_haps is not None:
        settings['data']['ref_haps_file'] = args.ref_haps

    sampler_overrides = {
        'burnin': args.burnin,
        'sampling': args.sampling,
        'fold': args.fold,
        'cycles': args.cycles,
        'estimator': args.estimator,
        'parallel_chains': args.parallel_chains,
    }
    for key, value in sampler_overrides.items():
        if value is not None:
            settings['sampler'][key] = value
    if args.kickstart:
        settings['sampler']['kickstart'] = True

    if args.trace_log is not None:
        settings['output']['trace_log'] = args.trace_log
    if args.output_dir is not None:
        settings['output']['output_dir'] = args.output_dir
    if args.graph_out is not None:
        settings['output']['relationship_graph_file'] = args.graph_out
    if args.seed is not None:
        settings['seed'] = args.seed
    if args.device is not None:
        settings['device'] = args.device
    return HaploMCConfig(**settings)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    try:
        config = config_from_args(args)
        runner = HaploMCRunner(config)
        results = runner.run()
    except (HaploMCError, ValueError) as e:
        logging.error(str(e))
        sys.exit(1)

    logging.info(f"Done. Phased output: {results['output_path']}")
    return 0


if __name__ == '__main__':
    main()
