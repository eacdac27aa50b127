from dataclasses import replace
from datetime import date

import streamlit as st

from config import StudyConfig
from pipeline import generate_bundle, make_zip_bytes
from reporting import records_frame, summary_table


# ---------------------------
# Streamlit UI
# ---------------------------

st.set_page_config(page_title="Synthetic Trial Data Generator", layout="wide")
st.title("Synthetic Trial Data Generator")
st.caption("SC (disposition) drives DM (demography) and VS (vital signs); all three share one subject timeline.")

defaults = StudyConfig()

with st.sidebar:
    st.header("Controls")

    seed = st.number_input("Seed", min_value=0, max_value=10_000_000, value=42, step=1)
    study_id = st.text_input("Study ID", value=defaults.study_id)
    n_subjects = st.slider("Number of subjects", min_value=10, max_value=500, value=defaults.subject_count, step=10)
    n_sites = st.slider("Number of sites", min_value=1, max_value=50, value=len(defaults.site_ids), step=1)

    st.subheader("Timeline")
    enrollment_start = st.date_input("Enrollment window start", value=defaults.enrollment_start)
    window_days = st.slider("Enrollment window (days)", 30, 730, value=defaults.enrollment_window_days, step=1)

    st.subheader("Scenario knobs")
    missing_rate = st.slider("Missing field rate (DM age/sex/race)", 0.0, 0.5, value=defaults.missing_rate, step=0.01)

cfg = replace(
    defaults,
    study_id=study_id.strip() or defaults.study_id,
    subject_count=int(n_subjects),
    site_ids=tuple(str(i + 1) for i in range(int(n_sites))),
    enrollment_start=enrollment_start if isinstance(enrollment_start, date) else defaults.enrollment_start,
    enrollment_window_days=int(window_days),
    missing_rate=float(missing_rate),
    seed=int(seed),
)

if st.button("Generate dataset", type="primary"):
    result, files = generate_bundle(cfg)

    st.success("Generated.")
    if result.issues:
        st.warning("Consistency issues found:")
        for it in result.issues:
            st.write(f"- {it}")
    else:
        st.info("Validation passed (cross-table checks).")

    st.download_button(
        "Download ZIP (SC/DM/VS + manifest)",
        data=make_zip_bytes(files),
        file_name=f"{cfg.study_id}_synthetic.zip",
        mime="application/zip",
    )

    st.subheader("Report card")
    st.json(result.report)

    st.subheader("Demographics by arm")
    st.dataframe(summary_table(result.demography), use_container_width=True)

    with st.expander("Preview SC"):
        st.dataframe(records_frame(result.subjects).head(50), use_container_width=True)
    with st.expander("Preview DM"):
        st.dataframe(records_frame(result.demography).head(50), use_container_width=True)
    with st.expander("Preview VS"):
        st.dataframe(records_frame(result.vitals).head(50), use_container_width=True)
