import plotly.express as px
import pandas as pd

def export_hit_timeline(timeline, path: str):
    if not timeline:
        with open(path, "w") as f:
            f.write("<h1>Access Timeline</h1><p>No data to display.</p>")
        return

    df = pd.DataFrame(timeline)
    df['step'] = pd.to_numeric(df['step'], errors='coerce')
    df['address'] = pd.to_numeric(df['address'], errors='coerce')
    df = df.dropna(subset=['step', 'address'])

    df['outcome'] = df['hit'].map({True: 'hit', False: 'miss'})
    df['address_hex'] = df['address'].map(lambda a: f"0x{int(a):08X}")
    # Running hit rate over the trace
    df["hit_rate"] = df["hit"].astype(int).expanding().mean()

    hover_data_cols = ['kind', 'address_hex', 'width', 'value', 'hit_rate']
    existing_hover_cols = [c for c in hover_data_cols if c in df.columns]

    fig = px.scatter(
        df,
        x="step",
        y="address",
        color="outcome",
        symbol="kind",
        hover_data=existing_hover_cols,
        title="Memory Access Timeline (hits and misses)",
        labels={"step": "Step", "address": "Address", "outcome": "Outcome"},
        color_discrete_map={"hit": "seagreen", "miss": "firebrick"},
    )
    fig.update_layout(
        height=500,
        font=dict(family="Courier New, monospace", size=12),
        legend_title="Outcome"
    )

    fig.write_html(path, include_plotlyjs="cdn", full_html=True)

def export_cache_ascii(name, snapshot):
    if not snapshot:
        return f"{name}: cache is disabled."

    associativity = len(snapshot[0])
    chart = f"{name} contents ({len(snapshot)} rows x {associativity} ways)\n"
    chart += "" + ("-" * 90) + "\n"
    chart += "row  | " + " | ".join(f"way {w:<2} V D tag".ljust(18) for w in range(associativity)) + "\n"

    for row in snapshot:
        cells = []
        for way in row:
            flags = f"{'V' if way.valid else '-'} {'D' if way.dirty else '-'}"
            tag = f"0x{way.tag:X}" if way.valid else "-"
            cells.append(f"       {flags} {tag}".ljust(18))
        chart += f"{row[0].row:>4} | " + " | ".join(cells) + "\n"

    chart += "" + ("-" * 90) + "\n"
    return chart
