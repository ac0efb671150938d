import altair as alt
import pandas as pd
import streamlit as st
from contextlib import contextmanager
from datetime import date
from typing import Dict, List, Optional

from koc_core.charts import brand_share_chart, province_chart, trend_chart
from koc_core.config import configure_logging, is_configured_url, load_settings
from koc_core.data import prepare_context
from koc_core.dates import parse_canonical, to_display
from koc_core.excel_io import ImportFileError, export_records, import_records
from koc_core.filters import SortConfig, available_koc_types, is_active, normalize_filters, request_sort
from koc_core.gateway import SheetGateway, SheetGatewayError
from koc_core.grouping import EntityGroup
from koc_core.metrics_overview import compute_overview
from koc_core.records import (
    BRANDS,
    GENDERS,
    KOC_TYPES,
    MAIN_FIELDS,
    PROVINCES,
    KOCRecord,
    blank_record,
    profile_from_existing,
    record_as_dict,
    record_from_dict,
)
from koc_core.state import AppState
from koc_core.validation import validate_record

alt.data_transformers.disable_max_rows()
settings = load_settings()
configure_logging(settings.log_level)

EXPORT_NAME = "danh_sach_koc_chi_tiet.xlsx"
EXPORT_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SORT_COLUMNS = {"name": "Name", "followers": "Followers", "address": "Province"}


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card {border: 1px solid #e5e7eb;border-radius: 12px;padding: 16px;background: #ffffff;
               box-shadow: 0 1px 2px rgba(0,0,0,0.04); margin-bottom: 12px;}
        .card-header {display: flex;justify-content: space-between;align-items: center;margin-bottom: 8px;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;}
        .card-actions {font-size: 0.9rem;color: #2563eb;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #dbeafe;border: 1px solid #bfdbfe;border-radius: 14px;padding: 2px 10px;font-size: 0.8rem;color: #1e40af;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str, actions: Optional[str] = None):
    container = st.container()
    container.markdown(
        f"""
        <div class="card">
          <div class="card-header">
            <div class="card-title">{title}</div>
            <div class="card-actions">{actions or ""}</div>
          </div>
        """,
        unsafe_allow_html=True,
    )
    body = container.container()
    with body:
        yield body
    container.markdown("</div>", unsafe_allow_html=True)


def chips(labels: List[str]) -> str:
    return "".join(f"<span class='chip'>{txt}</span>" for txt in labels)


def format_vnd(value: float) -> str:
    return f"{value:,.0f} đ"


def render_page_header(title: str, breadcrumb: str, summary_html: str = "", refresh: bool = True):
    inject_base_styles()
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if refresh and st.button("Refresh", help="Reload every record from the sheet."):
            app_state().load(gateway())
            st.rerun()
    if summary_html:
        st.markdown(f"<div class='chip-row'>{summary_html}</div>", unsafe_allow_html=True)


def flash(kind: str, message: str):
    st.session_state["_flash"] = (kind, message)


def show_flash():
    pending = st.session_state.pop("_flash", None)
    if not pending:
        return
    kind, message = pending
    getattr(st, kind)(message)


# ---------- session ----------
def app_state() -> AppState:
    if "app_state" not in st.session_state:
        st.session_state["app_state"] = AppState()
    return st.session_state["app_state"]


def gateway() -> SheetGateway:
    url = st.session_state.get("sheet_url", settings.sheet_url)
    cached = st.session_state.get("_gateway")
    if cached is None or cached.url != url:
        cached = SheetGateway(url, timeout=settings.request_timeout)
        st.session_state["_gateway"] = cached
    return cached


def render_setup_page():
    render_page_header("Connect your sheet", "Setup", refresh=False)
    with card("Google Sheet endpoint"):
        st.markdown(
            "Deploy the Apps Script bound to your KOC sheet as a web app, then paste its `/exec` URL here. "
            "You can also set `KOC_SHEET_URL` before starting the app."
        )
        url = st.text_input("Web app URL", value=st.session_state.get("sheet_url", ""))
        if st.button("Connect", type="primary"):
            if not is_configured_url(url):
                st.error("Enter the deployed web app URL.")
            else:
                st.session_state["sheet_url"] = url.strip()
                st.rerun()


# ---------- dashboard ----------
def render_leaderboard(title: str, key: str, rows: List[Dict], metric: str, metric_label: str):
    with card(title):
        st.radio("Brand", BRANDS, horizontal=True, key=key, label_visibility="collapsed")
        if not rows:
            st.info("No collaborations in this window.")
            return
        table = pd.DataFrame(rows)
        table["cooperation_date"] = table["cooperation_date"].map(to_display)
        table = table[["rank", "koc_id", "name", "cooperation_date", metric]].rename(
            columns={"rank": "#", "koc_id": "KOC ID", "name": "Name", "cooperation_date": "Date", metric: metric_label}
        )
        st.dataframe(table, hide_index=True, use_container_width=True, column_config={metric_label: st.column_config.NumberColumn(format="%d đ")})


def render_dashboard_page(state: AppState):
    render_page_header("Overview", "Home / Dashboard")
    c1, c2, c3 = st.columns([3, 3, 4])
    start = c1.date_input("From", value=None, format="DD/MM/YYYY")
    end = c2.date_input("To", value=None, format="DD/MM/YYYY")
    labels = [f"From {start:%d/%m/%Y}" if start else "From: any", f"To {end:%d/%m/%Y}" if end else "To: any"]
    c3.markdown(f"<div class='chip-row'>{chips(labels)}</div>", unsafe_allow_html=True)

    overview = compute_overview(
        state.records,
        start=start,
        end=end,
        top10_brand=st.session_state.get("top10_brand", BRANDS[0]),
        top5_brand=st.session_state.get("top5_brand", BRANDS[0]),
        include_charts=False,
    )
    kpis = overview["kpis"]
    with card("Key figures"):
        cols = st.columns(3)
        cols[0].metric("Total KOCs", f"{kpis['total_kocs']:,}", help="Distinct people, by tax code or name and phone.")
        cols[1].metric("Total revenue (3M)", format_vnd(kpis["total_revenue"]))
        best = kpis["best_brand"]
        cols[2].metric("Best brand", best["name"], delta=format_vnd(best["revenue"]) if best["revenue"] else None, delta_color="off")

    chart_cols = st.columns(2)
    with chart_cols[0]:
        with card("Collaborations by brand"):
            if overview["brand_histogram"]:
                st.altair_chart(brand_share_chart(overview["brand_histogram"]), use_container_width=True)
            else:
                st.info("No data.")
    with chart_cols[1]:
        with card("KOCs by province"):
            if overview["province_histogram"]:
                st.altair_chart(province_chart(overview["province_histogram"]), use_container_width=True)
            else:
                st.info("No data.")
    with card("Collaboration trend"):
        if overview["trend"]:
            st.altair_chart(trend_chart(overview["trend"]), use_container_width=True)
        else:
            st.info("No dated collaborations.")

    board_cols = st.columns(2)
    with board_cols[0]:
        render_leaderboard("Top 10 revenue this month", "top10_brand", overview["leaderboards"]["monthly"]["rows"], "revenue_1m", "Revenue 1M")
    with board_cols[1]:
        render_leaderboard("Top 5 revenue, last 3 months", "top5_brand", overview["leaderboards"]["quarterly"]["rows"], "revenue_3m", "Revenue 3M")


# ---------- management ----------
def open_form(record: Optional[KOCRecord] = None):
    st.session_state["form_record"] = record_as_dict(record or blank_record())
    st.session_state["form_version"] = st.session_state.get("form_version", 0) + 1
    st.session_state["form_errors"] = {}


def close_form():
    for key in ("form_record", "form_errors"):
        st.session_state.pop(key, None)


def run_delete(state: AppState, row_ids: List[int]):
    try:
        with st.spinner("Deleting..."):
            deleted = state.delete(gateway(), row_ids)
    except SheetGatewayError as exc:
        flash("error", f"Delete failed: {exc}")
        return
    # Row ids shift after a delete.
    for key in [k for k in st.session_state if str(k).startswith("sel_")]:
        del st.session_state[key]
    st.session_state["selected_rows"] = set()
    flash("success", f"Deleted {len(deleted)} collaboration(s).")


def render_toolbar(state: AppState):
    c1, c2, c3 = st.columns([2, 5, 2])
    if c1.button("Add KOC", type="primary"):
        open_form()
    with c2:
        upload = st.file_uploader("Import from Excel", type=["xlsx", "xls", "csv"], label_visibility="collapsed")
        if upload is not None and st.button(f"Import {upload.name}"):
            try:
                parsed = import_records(upload.getvalue(), upload.name)
                if not parsed:
                    flash("warning", "No rows with a name were found in the file.")
                else:
                    with st.spinner("Importing..."):
                        created = state.batch_add(gateway(), parsed)
                    flash("success", f"Imported {len(created)} KOC(s).")
            except ImportFileError as exc:
                flash("error", str(exc))
            except SheetGatewayError as exc:
                flash("error", f"Import failed: {exc}")
            st.rerun()
    c3.download_button(
        "Export Excel",
        data=export_records(state.records),
        file_name=EXPORT_NAME,
        mime=EXPORT_MIME,
        disabled=not state.records,
    )


def render_filters(state: AppState):
    search = st.text_input("Search", placeholder="Name, KOC ID, tax code, phone or email")
    with st.expander("Filters", expanded=False):
        c1, c2 = st.columns(2)
        brands = c1.multiselect("Brands", BRANDS)
        koc_types = c2.multiselect("KOC type", available_koc_types(state.records))
        province = c1.selectbox("Province", [""] + PROVINCES, format_func=lambda v: v or "All")
        main_field = c2.selectbox("Main field", [""] + MAIN_FIELDS, format_func=lambda v: v or "All")
        followers_min = c1.number_input("Followers from", min_value=0, value=None, step=1000)
        followers_max = c2.number_input("Followers to", min_value=0, value=None, step=1000)
    return normalize_filters(
        {
            "search": search,
            "brands": brands,
            "province": province,
            "main_field": main_field,
            "koc_types": koc_types,
            "followers_min": followers_min,
            "followers_max": followers_max,
        }
    )


def render_sort_bar():
    current: Optional[SortConfig] = st.session_state.get("sort")
    cols = st.columns(len(SORT_COLUMNS) + 1)
    cols[0].markdown("**Sort by**")
    for col, (key, label) in zip(cols[1:], SORT_COLUMNS.items()):
        arrow = ""
        if current is not None and current.key == key:
            arrow = " ▲" if current.direction == "ascending" else " ▼"
        if col.button(label + arrow, key=f"sort_{key}"):
            st.session_state["sort"] = request_sort(current, key)
            st.rerun()


def render_group(state: AppState, group: EntityGroup):
    main = group.main
    title = f"{main.name} · {main.tax_code or '-'} · {main.followers:,} followers · {main.address or '-'} · {len(group.history)} collaboration(s)"
    with st.expander(title):
        st.markdown(f"<div class='chip-row'>{chips(group.brands)}</div>", unsafe_allow_html=True)
        selected = st.session_state.setdefault("selected_rows", set())
        for record in group.history:
            c0, c1, c2, c3, c4, c5, c6 = st.columns([1, 2, 2, 2, 2, 1, 1])
            checked = c0.checkbox("Select", value=record.row_id in selected, key=f"sel_{record.row_id}", label_visibility="collapsed")
            if checked:
                selected.add(record.row_id)
            else:
                selected.discard(record.row_id)
            c1.write(f"{record.koc_id} · {record.brand.value}")
            c2.write(to_display(record.cooperation_date) or "-")
            c3.write(format_vnd(record.unit_price))
            c4.write(format_vnd(record.revenue_1m))
            if c5.button("Edit", key=f"edit_{record.row_id}"):
                open_form(record)
                st.rerun()
            if c6.button("Delete", key=f"del_{record.row_id}"):
                st.session_state["pending_delete"] = [record.row_id]
                st.rerun()


def render_pending_delete(state: AppState):
    pending = st.session_state.get("pending_delete")
    if not pending:
        return
    st.warning(f"Delete {len(pending)} collaboration(s)? This cannot be undone.")
    c1, c2, _ = st.columns([1, 1, 6])
    if c1.button("Confirm delete", type="primary"):
        st.session_state.pop("pending_delete", None)
        run_delete(state, pending)
        st.rerun()
    if c2.button("Cancel", key="cancel_delete"):
        st.session_state.pop("pending_delete", None)
        st.rerun()


def render_pagination(ctx: Dict):
    pages = ctx["total_pages"]
    c1, c2, c3, c4 = st.columns([5, 1, 2, 1])
    c1.caption(f"Showing {len(ctx['page_groups'])} of {len(ctx['filtered_groups'])} KOCs")
    if c2.button("Previous", disabled=ctx["page"] <= 1):
        st.session_state["page"] = max(1, ctx["page"] - 1)
        st.rerun()
    c3.markdown(f"Page {ctx['page']} / {pages}")
    if c4.button("Next", disabled=ctx["page"] >= pages):
        st.session_state["page"] = min(pages, ctx["page"] + 1)
        st.rerun()


def render_form(state: AppState):
    draft = st.session_state.get("form_record")
    if draft is None:
        return
    version = st.session_state.get("form_version", 0)
    editing = draft["row_id"] > 0
    with card("Edit collaboration" if editing else "New collaboration", draft["koc_id"] if editing else None):
        if not editing:
            t1, t2 = st.columns([4, 1])
            tax_code = t1.text_input("Tax code", value=draft["tax_code"], key=f"autofill_tax_{version}")
            if t2.button("Fill from existing", help="Copy profile details from a KOC with this tax code."):
                profile = profile_from_existing(state.records, tax_code)
                if profile is None:
                    st.info("No KOC with this tax code yet.")
                else:
                    st.session_state["form_record"] = record_as_dict(record_from_dict({**draft, **profile, "tax_code": tax_code}))
                    st.session_state["form_version"] = version + 1
                    st.rerun()

        errors = st.session_state.get("form_errors", {})
        with st.form(f"koc_form_{version}"):
            c1, c2, c3 = st.columns(3)
            values = dict(draft)
            values["name"] = c1.text_input("Full name *", value=draft["name"])
            values["gender"] = c2.selectbox("Gender", GENDERS, index=GENDERS.index(draft["gender"]))
            values["birth_year"] = c3.number_input("Birth year", min_value=0, max_value=3000, value=int(draft["birth_year"]), step=1)
            if editing:
                values["tax_code"] = c1.text_input("Tax code", value=draft["tax_code"])
            else:
                values["tax_code"] = st.session_state.get(f"autofill_tax_{version}", draft["tax_code"])
            values["phone"] = c2.text_input("Phone *", value=draft["phone"])
            values["email"] = c3.text_input("Email *", value=draft["email"])
            values["address"] = c1.selectbox("Province", [""] + PROVINCES, index=([""] + PROVINCES).index(draft["address"]) if draft["address"] in PROVINCES else 0)
            values["main_field"] = c2.selectbox("Main field", [""] + MAIN_FIELDS, index=([""] + MAIN_FIELDS).index(draft["main_field"]) if draft["main_field"] in MAIN_FIELDS else 0)
            values["koc_type"] = c3.selectbox("KOC type", KOC_TYPES, index=KOC_TYPES.index(draft["koc_type"]))
            values["profile_link"] = c1.text_input("Profile link", value=draft["profile_link"])
            values["followers"] = c2.number_input("Followers", value=int(draft["followers"]), step=100)
            values["brand"] = c3.selectbox("Brand", BRANDS, index=BRANDS.index(draft["brand"]))
            values["unit_price"] = c1.number_input("Unit price", min_value=0.0, value=float(draft["unit_price"]), step=100000.0)
            values["engagement_rate"] = c2.number_input("Engagement rate (%)", min_value=0.0, value=float(draft["engagement_rate"]), step=0.1)
            coop = parse_canonical(draft["cooperation_date"])
            picked = c3.date_input("Cooperation date", value=coop, format="DD/MM/YYYY")
            values["cooperation_date"] = picked.isoformat() if isinstance(picked, date) else ""
            values["avg_views"] = c1.number_input("Average views", min_value=0, value=int(draft["avg_views"]), step=100)
            values["revenue_1m"] = c2.number_input("Revenue after 1M", min_value=0.0, value=float(draft["revenue_1m"]), step=100000.0)
            values["revenue_3m"] = c3.number_input("Revenue after 3M", min_value=0.0, value=float(draft["revenue_3m"]), step=100000.0)
            values["posted_content_link"] = st.text_input("Posted content link", value=draft["posted_content_link"])
            n1, n2, n3 = st.columns(3)
            values["voice"] = n1.text_input("Voice", value=draft["voice"])
            values["progress"] = n2.text_input("Progress", value=draft["progress"])
            values["potential"] = n3.text_input("Growth potential", value=draft["potential"])
            values["notes"] = st.text_area("Notes", value=draft["notes"])
            for message in errors.values():
                st.error(message)
            s1, s2 = st.columns([1, 6])
            submitted = s1.form_submit_button("Save", type="primary")
            cancelled = s2.form_submit_button("Cancel")

    if cancelled:
        close_form()
        st.rerun()
    if submitted:
        record = record_from_dict(values)
        found = validate_record(record)
        if found:
            st.session_state["form_record"] = record_as_dict(record)
            st.session_state["form_errors"] = found
            st.session_state["form_version"] = version + 1
            st.rerun()
        try:
            with st.spinner("Saving..."):
                if editing:
                    state.update(gateway(), record)
                    flash("success", f"Saved {record.name}.")
                else:
                    created = state.add(gateway(), record)
                    flash("success", f"Added {created.name} as {created.koc_id}.")
        except SheetGatewayError as exc:
            st.session_state["form_errors"] = {"_save": f"Save failed: {exc}"}
            st.session_state["form_record"] = record_as_dict(record)
            st.session_state["form_version"] = version + 1
            st.rerun()
        close_form()
        st.rerun()


def render_management_page(state: AppState):
    render_page_header("KOC management", "Home / KOCs")
    render_toolbar(state)
    render_form(state)
    filters = render_filters(state)

    signature = repr(filters)
    if st.session_state.get("_filters_sig") != signature:
        st.session_state["_filters_sig"] = signature
        st.session_state["page"] = 1

    render_sort_bar()
    ctx = prepare_context(
        state.records,
        filters,
        st.session_state.get("sort"),
        page=st.session_state.get("page", 1),
        page_size=settings.page_size,
    )
    if ctx["total_pages"] and ctx["page"] > ctx["total_pages"]:
        st.session_state["page"] = ctx["total_pages"]
        st.rerun()

    selected = st.session_state.setdefault("selected_rows", set())
    header = f"KOC list ({len(ctx['filtered_groups'])})"
    with card(header, "filtered" if is_active(filters) else None):
        render_pending_delete(state)
        if selected and st.button(f"Delete selected ({len(selected)})"):
            st.session_state["pending_delete"] = sorted(selected)
            st.rerun()
        if not ctx["page_groups"]:
            st.info("No KOCs match the current filters.")
        for group in ctx["page_groups"]:
            render_group(state, group)
        if ctx["total_pages"]:
            render_pagination(ctx)


# ---------- UI setup ----------
st.set_page_config(page_title="KOC Dashboard", layout="wide")
inject_base_styles()
st.title("KOC Collaboration Dashboard")
st.caption("Track influencer collaborations stored in the team's Google Sheet.")

if not is_configured_url(st.session_state.get("sheet_url", settings.sheet_url)):
    render_setup_page()
    st.stop()

state = app_state()
if not state.loaded and state.error is None:
    with st.spinner("Loading KOCs from the sheet..."):
        state.load(gateway())

if state.error:
    st.error(f"Could not load data: {state.error}")
    r1, r2, _ = st.columns([1, 2, 6])
    if r1.button("Retry"):
        state.load(gateway())
        st.rerun()
    if r2.button("Change sheet URL"):
        st.session_state["sheet_url"] = ""
        st.session_state.pop("app_state", None)
        st.rerun()
    st.stop()

with st.sidebar:
    st.markdown("### Navigate")
    nav_choice = st.radio("Navigate", ["Dashboard", "KOC management"], index=0, label_visibility="collapsed")
    st.markdown("---")
    st.caption(f"{len(state.records)} collaborations loaded")

show_flash()
if nav_choice == "Dashboard":
    render_dashboard_page(state)
else:
    render_management_page(state)
