import json
import sys
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd
import numpy as np

# Apply a professional style
plt.style.use('ggplot')


def load_results(filepath):
    """
    Reads a harness results JSON file into a flat DataFrame with one row
    per (run, case). Failed cases keep a NaN execution time.
    """
    try:
        with open(filepath, 'r') as f:
            data = json.load(f)
    except FileNotFoundError:
        print(f"Error: The file '{filepath}' was not found.")
        sys.exit(1)

    rows = []
    for run in data.get('runs', []):
        with_indexes = bool(run.get('indexes'))
        for position, result in enumerate(run.get('results', [])):
            rows.append({
                'run': run.get('title'),
                'with_indexes': with_indexes,
                'position': position,
                'description': result.get('description'),
                'time_ms': result.get('execution_time_ms'),
                'rows': result.get('row_count'),
                'failed': result.get('error') is not None,
            })

    df = pd.DataFrame(rows)
    if not df.empty:
        df['time_ms'] = pd.to_numeric(df['time_ms'], errors='coerce')
    return df


def comparison_table(df):
    """Pivot to one row per case with the time without and with indexes"""
    table = df.pivot_table(index=['position', 'description'], columns='with_indexes',
                           values='time_ms', aggfunc='mean')
    table = table.rename(columns={False: 'without_ms', True: 'with_ms'}).reset_index()
    if 'without_ms' in table and 'with_ms' in table:
        table['speedup'] = table['without_ms'] / table['with_ms']
    return table.sort_values('position')


def plot_case_times(df, output='index_case_times.png'):
    """Grouped bars of execution time per case, without vs. with indexes"""
    table = comparison_table(df)
    labels = [d if len(d) <= 40 else d[:37] + '...' for d in table['description']]
    x = np.arange(len(labels))
    width = 0.4

    fig, ax = plt.subplots(figsize=(12, 6))
    if 'without_ms' in table:
        ax.bar(x - width / 2, table['without_ms'], width, label='Without indexes', color='#E24A33')
    if 'with_ms' in table:
        ax.bar(x + width / 2, table['with_ms'], width, label='With indexes', color='#348ABD')

    ax.set_ylabel('Execution time (ms)', fontweight='bold')
    ax.set_title('Query Latency by Case', fontsize=14)
    ax.set_xticks(x)
    ax.set_xticklabels(labels, rotation=35, ha='right', fontsize=9)
    ax.set_yscale('log')
    ax.legend()

    plt.tight_layout()
    plt.savefig(output)
    print(f"Saved {output}")


def plot_speedup(df, output='index_speedup.png'):
    """Horizontal bars of the speedup factor per case"""
    table = comparison_table(df)
    if 'speedup' not in table:
        print("Speedup plot needs runs both without and with indexes, skipping.")
        return
    table = table.dropna(subset=['speedup'])

    fig, ax = plt.subplots(figsize=(10, max(3, 0.5 * len(table))))
    colors = ['#8EBA42' if s >= 1 else '#E24A33' for s in table['speedup']]
    bars = ax.barh(table['description'], table['speedup'], color=colors)
    ax.axvline(1.0, color='k', linestyle='--', alpha=0.5)
    ax.set_xlabel('Speedup (without / with)', fontweight='bold')
    ax.set_title('Index Speedup per Case', fontsize=14)
    ax.invert_yaxis()

    for bar in bars:
        width = bar.get_width()
        ax.text(width, bar.get_y() + bar.get_height() / 2, f' {width:.1f}x', va='center', fontsize=9)

    plt.tight_layout()
    plt.savefig(output)
    print(f"Saved {output}")


if __name__ == "__main__":
    filename = sys.argv[1] if len(sys.argv) > 1 else 'results/query-performance.json'

    print(f"Processing file: {filename}...")
    df = load_results(filename)

    if df.empty:
        print("No benchmark results found! Check file format.")
    else:
        print(comparison_table(df).to_string(index=False))
        plot_case_times(df)
        plot_speedup(df)
