"""
app.py
Streamlit Membership Desk (staff + admin).
Run: streamlit run app.py
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

import streamlit as st

import auth
import db
import utils
from config import load_settings
from errors import MembershipError
from migration import migrate_customers
from models import MEMBERSHIP_FILTERS, PLANS, ROLES, CustomerFormData
from query import days_until
from reports import PLAN_FILTERS, REPORT_TYPES, generate_report
from stores import LocalCustomerStore, make_store
from verification import resolve_payload

st.set_page_config(page_title="Membership Desk", layout="wide")


def init_once():
    # Settings, logging, auth backend and store live for the browser session
    if "services" in st.session_state:
        return st.session_state.services

    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    backend = auth.make_auth_backend(settings)
    gate = auth.AuthGate(backend, st.session_state)
    store = make_store(settings, token_provider=gate.token)

    st.session_state.services = {"settings": settings, "gate": gate, "store": store}
    return st.session_state.services


def services():
    return st.session_state.services


def run_action(fn, success: str | None = None):
    """Run one staff action; any failure becomes an error toast and the app carries on."""
    try:
        result = fn()
    except MembershipError as e:
        st.error(str(e))
        return None
    if success:
        st.success(success)
    return result


# ---------- auth screens ----------

def login_screen():
    st.title("🔐 Staff Sign In")

    col1, col2 = st.columns([1, 1])
    with col1:
        email = st.text_input("Email", value=auth.DEFAULT_ADMIN_EMAIL)
        password = st.text_input("Password", type="password")
        if st.button("Sign in", type="primary"):
            if run_action(lambda: services()["gate"].sign_in(email, password)):
                st.rerun()

    with col2:
        if services()["settings"].backend != "rest":
            st.info(
                "First run creates a default admin:\n\n"
                f"- email: **{auth.DEFAULT_ADMIN_EMAIL}**\n"
                f"- password: **{auth.DEFAULT_ADMIN_PASSWORD}**\n\n"
                "You will be forced to change it on first login."
            )


def force_change_password_screen():
    st.title("⚠️ Change Password (Required)")

    st.warning("You must change the default password before using the app.")
    new1 = st.text_input("New password", type="password")
    new2 = st.text_input("Confirm new password", type="password")

    if st.button("Update password", type="primary"):
        if new1 != new2:
            st.error("Passwords do not match.")
            return
        try:
            services()["gate"].change_password(new1)
        except MembershipError as e:
            st.error(str(e))
            return
        st.success("Password updated. You can continue.")
        st.rerun()


# ---------- pages ----------

def dashboard_page():
    st.header("📊 Dashboard")
    store = services()["store"]

    stats = run_action(store.stats)
    if stats is None:
        return

    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total customers", stats.total)
    c2.metric("Prestige", stats.prestige)
    c3.metric("Premier", stats.premier)
    c4.metric("Expiring in 30 days", stats.expiring_soon)

    st.divider()

    st.subheader("Expiring soon (next 30 days)")
    page = run_action(lambda: store.paginated_list(1, max(stats.expiring_soon, 1), "", "expiring"))
    if page and page.customers:
        st.dataframe(utils.customers_to_frame(page.customers), use_container_width=True, hide_index=True)
    else:
        st.caption("No customers expiring in the next 30 days.")


def customer_form(existing=None):
    if existing:
        st.subheader(f"✏️ Edit Customer ({existing.membership_number})")
    else:
        st.subheader("➕ Add Customer")

    col1, col2, col3 = st.columns(3)
    with col1:
        first_name = st.text_input("First name", value=(existing.first_name if existing else ""))
        last_name = st.text_input("Last name", value=(existing.last_name if existing else ""))
    with col2:
        email = st.text_input("Email", value=(existing.email if existing else ""))
        phone = st.text_input("Phone (optional)", value=((existing.phone or "") if existing else ""))
    with col3:
        membership_type = st.selectbox(
            "Membership type",
            options=list(PLANS),
            index=(PLANS.index(existing.membership_type) if existing else 0),
        )
        expiry_date = st.date_input(
            "Expiry date",
            value=(existing.expiry_date if existing else date.today() + timedelta(days=365)),
        )
        visits = st.number_input(
            "Number of visits", min_value=0, step=1, value=(existing.visits if existing else 0)
        )

    if st.button("Save", type="primary"):
        data = CustomerFormData(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone or None,
            membership_type=membership_type,
            expiry_date=expiry_date,
            visits=int(visits),
        )
        store = services()["store"]
        if existing:
            saved = run_action(lambda: store.update(existing.id, data), "Customer updated.")
        else:
            saved = run_action(lambda: store.create(data), "Customer added.")
        if saved:
            st.session_state.edit_customer_id = None
            st.rerun()


def customers_page():
    st.header("👥 Customers")
    settings = services()["settings"]
    store = services()["store"]

    with st.sidebar:
        st.subheader("Search & Filters")
        search = st.text_input("Search (name/email/membership no.)")
        membership_filter = st.selectbox("Membership", list(MEMBERSHIP_FILTERS))
        page_number = st.number_input("Page", min_value=1, step=1, value=1)

    page = run_action(
        lambda: store.paginated_list(int(page_number), settings.page_size, search, membership_filter)
    )
    if page is None:
        return

    st.dataframe(utils.customers_to_frame(page.customers), use_container_width=True, hide_index=True)
    st.caption(f"Page {page.page} of {max(page.total_pages, 1)} · {page.total_items} customers")

    st.divider()

    colA, colB = st.columns([1, 2])
    with colA:
        st.subheader("Select customer")
        options = {f"{c.full_name} ({c.membership_number})": c.id for c in page.customers}
        selected = st.selectbox("Customer", options=["(none)"] + list(options.keys()))

    with colB:
        if selected != "(none)":
            customer_id = options[selected]
            st.subheader("Customer actions")
            c1, c2, c3, c4 = st.columns(4)
            with c1:
                if st.button("Edit"):
                    st.session_state.edit_customer_id = customer_id
                    st.rerun()
            with c2:
                if st.button("Digital card"):
                    st.session_state.card_customer_id = customer_id
                    st.session_state.page = "Digital Card"
                    st.rerun()
            with c3:
                if st.button("Use one visit"):
                    if run_action(lambda: store.decrement_visits(customer_id), "Visit recorded."):
                        st.rerun()
            with c4:
                delete_confirm = st.checkbox("Confirm delete", value=False, key="del_confirm")
                if st.button("Delete", type="secondary", disabled=not delete_confirm):
                    try:
                        store.delete(customer_id)
                    except MembershipError as e:
                        st.error(str(e))
                    else:
                        st.success("Customer deleted.")
                        st.rerun()

    st.divider()

    if st.session_state.get("edit_customer_id"):
        existing = run_action(lambda: store.get_by_id(st.session_state.edit_customer_id))
        if existing:
            customer_form(existing=existing)
        if st.button("Cancel edit"):
            st.session_state.edit_customer_id = None
            st.rerun()
    else:
        customer_form(existing=None)


def digital_card_page():
    st.header("💳 Digital Membership Card")
    store = services()["store"]

    customer_id = st.session_state.get("card_customer_id")
    if not customer_id:
        st.info("Pick a customer on the Customers page and choose “Digital card”.")
        return

    customer = run_action(lambda: store.get_by_id(customer_id))
    if customer is None:
        st.warning("Customer not found.")
        return
    payload = run_action(lambda: store.qr_payload(customer_id))

    with st.container(border=True):
        st.subheader(f"{customer.membership_type.upper()} MEMBER")
        st.markdown(f"### {customer.full_name}")
        c1, c2, c3 = st.columns(3)
        c1.metric("Membership no.", customer.membership_number)
        c2.metric("Valid until", customer.expiry_date.strftime("%d/%m/%Y"))
        c3.metric("Visits remaining", customer.visits)
        st.caption("Verification code")
        st.code(payload or "", language=None)


def verify_page():
    st.header("✅ Verify Access")
    store = services()["store"]

    payload = st.text_input("Scanned code or membership number")
    if not payload:
        return

    customer = run_action(lambda: resolve_payload(store, payload))
    if customer is None:
        st.error("No customer matches this code.")
        return

    days_left = days_until(customer.expiry_date, date.today())
    st.write(
        f"**{customer.full_name}** · {customer.membership_type} · "
        f"{customer.membership_number} · expires {customer.expiry_date:%d/%m/%Y}"
    )
    if days_left < 0:
        st.error("Membership has expired.")
    elif customer.visits <= 0:
        st.warning("No visits remaining.")
    else:
        st.success(f"Access granted. {customer.visits} visit(s) remaining.")
        if st.button("Record visit", type="primary"):
            if run_action(lambda: store.decrement_visits(customer.id), "Visit recorded."):
                st.rerun()


def reports_page():
    st.header("🧾 Reports")
    store = services()["store"]

    c1, c2 = st.columns(2)
    with c1:
        report_type = st.selectbox("Period", list(REPORT_TYPES))
    with c2:
        plan_filter = st.selectbox("Membership", list(PLAN_FILTERS))

    from_date = to_date = None
    if report_type == "custom":
        c3, c4 = st.columns(2)
        with c3:
            from_date = st.date_input("From", value=date.today().replace(day=1))
        with c4:
            to_date = st.date_input("To", value=date.today())
        if from_date > to_date:
            st.error("The from date must not be after the to date.")
            return

    if st.button("Generate report", type="primary"):
        report = run_action(lambda: generate_report(store, report_type, plan_filter, from_date, to_date))
        if report:
            st.caption(f"{report.row_count} customers in this report.")
            st.download_button(
                f"Download {report.filename}",
                data=report.content,
                file_name=report.filename,
                mime="text/csv",
            )


def users_page():
    st.header("🛡️ Staff Management")
    gate = services()["gate"]

    if not gate.is_admin():
        st.error("Admin access required.")
        return

    users = run_action(gate.list_users) or []
    st.dataframe(utils.users_to_frame(users), use_container_width=True, hide_index=True)

    st.divider()

    st.subheader("Add staff account")
    c1, c2 = st.columns(2)
    with c1:
        email = st.text_input("Email", key="new_user_email")
        full_name = st.text_input("Full name", key="new_user_name")
    with c2:
        password = st.text_input("Password", type="password", key="new_user_password")
        role = st.selectbox("Role", list(ROLES), key="new_user_role")
    if st.button("Create account", type="primary"):
        if run_action(lambda: gate.create_user(email, password, full_name, role), "Account created."):
            st.rerun()

    if not users:
        return

    st.divider()

    st.subheader("Edit / remove account")
    options = {f"{u.email} ({u.role})": u for u in users}
    chosen = options[st.selectbox("Account", list(options.keys()))]
    c3, c4 = st.columns(2)
    with c3:
        new_name = st.text_input("Full name", value=chosen.full_name or "", key="edit_user_name")
        new_role = st.selectbox("Role", list(ROLES), index=ROLES.index(chosen.role), key="edit_user_role")
        if st.button("Save account"):
            if run_action(lambda: gate.update_user(chosen.id, new_name, new_role), "Account updated."):
                st.rerun()
    with c4:
        confirm = st.checkbox("Confirm delete", value=False, key="del_user_confirm")
        if st.button("Delete account", disabled=not confirm):
            try:
                gate.delete_user(chosen.id)
            except MembershipError as e:
                st.error(str(e))
            else:
                st.success("Account deleted.")
                st.rerun()


def settings_page():
    st.header("⚙️ Settings")
    settings = services()["settings"]
    gate = services()["gate"]
    store = services()["store"]

    st.subheader("Change password")
    p1 = st.text_input("New password", type="password")
    p2 = st.text_input("Confirm new password", type="password")
    if st.button("Update password", type="primary"):
        if p1 != p2:
            st.error("Passwords do not match.")
        else:
            run_action(lambda: gate.change_password(p1), "Password updated.")

    st.divider()

    st.subheader("Sample data")
    st.caption("Insert 4 sample customers for testing (adds new rows each run).")
    if st.button("Insert sample data"):
        if run_action(lambda: utils.insert_sample_data(store), "Sample data inserted."):
            st.rerun()

    if settings.backend != "local" and gate.is_admin():
        st.divider()
        st.subheader("Migrate local customers")
        st.caption(f"Copies customers from {settings.store_file} into the {settings.backend} backend.")
        if st.button("Migrate"):
            result = run_action(lambda: migrate_customers(LocalCustomerStore(settings.store_file), store))
            if result is not None:
                if result.migrated == 0 and result.failed == 0:
                    st.info("No local data found to migrate.")
                else:
                    st.success(f"Migrated {result.migrated} customers.")
                if result.failed:
                    st.error(f"Failed to migrate {result.failed} customers.")


def main_app():
    gate = services()["gate"]
    user = gate.current_user()

    st.sidebar.title("🪪 Membership Desk")
    st.sidebar.caption(f"Signed in as: {user.full_name or user.email} ({user.role})")

    pages = ["Dashboard", "Customers", "Digital Card", "Verify", "Reports", "Settings"]
    if gate.is_admin():
        pages.insert(5, "Staff")
    if st.session_state.get("page") not in pages:
        st.session_state.page = "Dashboard"
    st.session_state.page = st.sidebar.radio("Navigate", pages, index=pages.index(st.session_state.page))

    if st.sidebar.button("Sign out"):
        gate.sign_out()
        st.rerun()

    if st.session_state.page == "Dashboard":
        dashboard_page()
    elif st.session_state.page == "Customers":
        customers_page()
    elif st.session_state.page == "Digital Card":
        digital_card_page()
    elif st.session_state.page == "Verify":
        verify_page()
    elif st.session_state.page == "Reports":
        reports_page()
    elif st.session_state.page == "Staff":
        users_page()
    elif st.session_state.page == "Settings":
        settings_page()


# --------- App entry ---------

def run():
    init_once()
    gate = services()["gate"]

    if not gate.is_authenticated:
        login_screen()
        return

    # Force password change on first login after DB creation
    if services()["settings"].backend != "rest" and db.is_force_password_change():
        force_change_password_screen()
        return

    main_app()


if __name__ == "__main__":
    run()
