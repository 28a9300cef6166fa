import itertools
import multiprocessing
import pandas as pd
import random
from tqdm import tqdm  # progress bar
from model import CityModel

# --- Simulation runner for a single configuration ---
def single_run(params: dict) -> dict:
    """
    Run one simulation with given parameters headlessly.
    Returns a dict of model metrics combined with the input params.
    """
    max_steps = params.get("max_steps", 200)
    iteration = params.get("iteration", 0)

    # Extract model construction params (exclude control fields)
    model_params = params.copy()
    model_params.pop("max_steps", None)
    model_params.pop("iteration", None)

    # Each iteration gets its own seed, so cities and commit orders differ
    model = CityModel(**model_params, max_steps=max_steps, seed=iteration)

    while model.running:
        model.step()

    # Collect metrics
    frame = model.datacollector.get_model_vars_dataframe()
    result = {
        'num_robots':         len(model.robots),
        'ticks':              model.ticks,
        'arrivals':           sum(r.arrivals for r in model.robots),
        'planning_failures':  model.planning_failures,
        'mean_moves':         frame['moves'].mean(),
        'mean_blocked':       frame['blocked'].mean(),
        'mean_largest_component': frame['largest_component'].mean(),
    }
    # Merge in input parameters for traceability
    result.update(model_params)
    result['iteration'] = iteration
    return result

# --- Batch runner to group multiple runs in one worker ---
def run_batch(params_batch: list[dict]) -> list[dict]:
    results = []
    for params in params_batch:
        try:
            results.append(single_run(params))
        except Exception as e:
            results.append({**params, 'error': str(e)})
    return results

# --- Utility to split list into N roughly equal chunks ---
def chunk_list(lst: list, n_chunks: int) -> list[list]:
    chunk_size = (len(lst) + n_chunks - 1) // n_chunks
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]

# --- Main entry point ---
if __name__ == "__main__":
    # Define parameter grid
    variable_params = {
        'policy':        ['replan', 'random'],
        'robot_density': [0.2, 0.5, 0.7, 0.9],
        'horizon':       [1, 5, 10],
        'width_blocks':  [5, 6, 8],
        'height_blocks': [4, 5, 6],
        'block_size':    [8, 12],
    }
    # Generate unique permutations
    perms = [dict(zip(variable_params.keys(), vals))
             for vals in itertools.product(*variable_params.values())]

    # Stratified sampling cap
    max_samples = 100
    policies = variable_params['policy']
    samples_per_policy = max_samples // len(policies)
    strat_samples = []
    for policy in policies:
        group = [p for p in perms if p['policy'] == policy]
        strat_samples.extend(group if len(group) <= samples_per_policy else random.sample(group, samples_per_policy))
    original_count = len(perms)
    perms = strat_samples
    print(f"Sampling {len(perms)}/{original_count} unique permutations (≈{samples_per_policy} per policy)")

    # Expand with iterations
    iterations = 10
    all_params = []
    for perm in perms:
        for it in range(iterations):
            p = perm.copy()
            p['iteration'] = it
            all_params.append(p)

    # Parallel execution setup
    n_workers = min(len(all_params), multiprocessing.cpu_count())
    batches = chunk_list(all_params, n_workers)
    print(f"Running {len(all_params)} runs across {len(batches)} batches on {n_workers} workers")

    # Execute and collect
    results = []
    with multiprocessing.Pool(processes=n_workers) as pool:
        for batch in tqdm(pool.imap(run_batch, batches), total=len(batches), desc="Batches"):
            results.extend(batch)

    # Save to CSV
    df = pd.DataFrame(results)
    if 'error' in df:
        failed = df['error'].notna().sum()
        print(f"{failed} runs failed")
        df = df[df['error'].isna()].drop(columns=['error'])
    df.to_csv('batch_results.csv', index=False)
    print(f"Batch completed: {len(df)} rows written to batch_results.csv.")
