"""
rbi_pipeline.pipelines — Batch job orchestrators.

Each pipeline module exports a run() async function and returns a report.

    from rbi_pipeline.pipelines import derivation_sweep, reconciliation

    report = await reconciliation.run(extract_dir="./data/psgc")
    report = await derivation_sweep.run(as_of=date(2026, 10, 18))
"""
