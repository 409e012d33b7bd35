"""
Streamlit Dashboard for Kanemane

The web side of the app: the place the WhatsApp bot sends people to
register and set up their assets, see where their money went this
month, and review and fix what the bot recorded.

DESIGN PRINCIPLES:
1. Every balance change goes through the LedgerEngine
2. Destructive actions need an explicit confirmation checkbox
3. Clear error messages in simple language

Run:
    streamlit run app/main.py
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from kanemane.audit import create_correlation_id
from kanemane.config import validate_all_settings
from kanemane.conversation import format_money
from kanemane.ledger import FamilyNotFoundError, InsufficientBalanceError, LedgerError
from kanemane.models.ledger import (
    AssetType,
    Country,
    Currency,
    FamilyOwner,
    TransactionKind,
    TransactionMeta,
    TransactionUpdate,
    User,
)
from kanemane.orchestrator import AppComponents, create_app_components, normalize_phone
from kanemane.services.storage import DuplicateError


# Page configuration
st.set_page_config(
    page_title="Kanemane",
    page_icon="💴",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .big-number {
        font-size: 2.0em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


COUNTRY_CURRENCY = {
    Country.JP: Currency.JPY,
    Country.ID: Currency.IDR,
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components(use_gemini=False)


def main():
    """Main application entry point."""
    components = get_components()

    st.sidebar.title("💴 Kanemane")
    st.sidebar.markdown("---")

    user = render_sign_in(components)

    page = st.sidebar.radio(
        "Navigate to:",
        ["📊 Dashboard", "💰 Assets", "🧾 Transactions", "👨‍👩‍👧 Family", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **On WhatsApp, try:**
        - makan siang 1500 yen
        - saldo
        - laporan
        """
    )

    if page == "⚙️ Settings":
        render_settings_page()
    elif user is None:
        render_register_page(components)
    elif page == "📊 Dashboard":
        render_dashboard_page(components, user)
    elif page == "💰 Assets":
        render_assets_page(components, user)
    elif page == "🧾 Transactions":
        render_transactions_page(components, user)
    elif page == "👨‍👩‍👧 Family":
        render_family_page(components, user)


def render_sign_in(components: AppComponents):
    """Pick the user by WhatsApp number. Prefilled from ?phone=... links."""
    default_phone = st.query_params.get("phone", "")
    phone = st.sidebar.text_input("WhatsApp number", value=default_phone)
    if not phone:
        return None

    user = components.storage.find_user_by_phone(normalize_phone(phone))
    if user is None:
        st.sidebar.warning("Number not registered yet")
    else:
        st.sidebar.success(f"Signed in as {user.name}")
    return user


def render_register_page(components: AppComponents):
    st.title("👋 Register")
    st.markdown("Register your WhatsApp number to start recording.")

    with st.form("register"):
        name = st.text_input("Name *")
        phone = st.text_input("WhatsApp number *", value=st.query_params.get("phone", ""))
        submitted = st.form_submit_button("Register", type="primary")

    if submitted:
        if not name or not normalize_phone(phone):
            st.error("Please enter your name and WhatsApp number")
            return
        try:
            components.storage.save_user(User(name=name, phone=normalize_phone(phone)))
        except DuplicateError:
            st.error("This number is already registered")
            return
        st.success("✅ Registered! Enter your number in the sidebar and add your first asset.")


def render_dashboard_page(components: AppComponents, user: User):
    st.title(f"📊 Halo, {user.name}")
    summary = run_async(components.dashboard.summary(user.owners))
    charts = run_async(components.dashboard.charts(user.owners))

    if not summary.balances and not summary.recent:
        st.info("Nothing recorded yet. Add an asset to get started.")
        return

    st.caption(
        f"{summary.month.label}: {summary.month.start.isoformat()} - {summary.month.end.isoformat()}"
    )
    for balance in summary.balances:
        currency = balance.currency
        monthly = summary.monthly_for(currency)
        top = summary.top_category_for(currency)

        st.markdown(f"### {currency.value}")
        col1, col2, col3, col4, col5 = st.columns(5)
        with col1:
            st.metric("Total assets", format_money(balance.total, currency))
        with col2:
            st.metric("Income this month", format_money(monthly.income, currency))
        with col3:
            st.metric("Expense this month", format_money(monthly.expense, currency))
        with col4:
            st.metric("Net this month", format_money(monthly.net, currency))
        with col5:
            st.metric(
                "Top category",
                top.category if top else "-",
                help="Expense category with the highest total this month",
            )

        chart_col1, chart_col2 = st.columns(2, gap="large")
        with chart_col1:
            st.markdown("#### 📈 Last 6 months")
            st.bar_chart(
                charts.trend_rows(currency),
                x="month",
                y=["Pemasukan", "Pengeluaran"],
            )
        with chart_col2:
            st.markdown("#### 🥧 Expenses by category")
            categories = charts.category_rows(currency)
            if categories:
                st.bar_chart(categories, x="category", y="amount")
            else:
                st.caption("No expenses this month.")

    st.markdown("---")
    st.markdown("#### 🕐 Recent Transactions")
    if not summary.recent:
        st.caption("No transactions yet.")
        return
    st.dataframe(
        [
            {
                "Date": row.date.isoformat(),
                "Type": row.type,
                "Category": row.category,
                "Asset": row.asset,
                "Amount": format_money(row.amount, row.currency),
                "Note": row.note,
            }
            for row in summary.recent
        ],
        use_container_width=True,
        hide_index=True,
    )


def render_assets_page(components: AppComponents, user: User):
    st.title("💰 Assets")
    ledger = components.ledger
    assets = run_async(ledger.list_assets(user.owners))

    if not assets:
        st.info("You have no assets yet. Add your first one below.")

    for currency in Currency:
        group = [a for a in assets if a.currency is currency]
        if not group:
            continue
        total = sum((a.balance for a in group), Decimal("0"))
        st.markdown(f"### {currency.value}")
        st.markdown(
            f'<div class="big-number">{format_money(total, currency)}</div>',
            unsafe_allow_html=True,
        )
        for asset in group:
            star = " 🌟" if asset.id == user.primary_asset_id else ""
            with st.expander(f"{asset.name}{star} - {format_money(asset.balance, currency)}"):
                render_asset_actions(components, user, asset)

    st.markdown("---")
    st.subheader("➕ Add Asset")
    with st.form("open_asset"):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Name *", placeholder="Yucho, BCA, PayPay")
            asset_type = st.selectbox(
                "Type *",
                options=list(AssetType),
                format_func=lambda x: x.label,
            )
        with col2:
            country = st.selectbox(
                "Country *",
                options=list(Country),
                format_func=lambda x: f"{x.value} ({COUNTRY_CURRENCY[x].value})",
            )
            opening = st.number_input("Opening balance", min_value=0.0, step=1.0)
        owners = [user.owner]
        if user.family_id:
            owners.append(FamilyOwner(family_id=user.family_id))
        owner = st.selectbox(
            "Owner *",
            options=owners,
            format_func=lambda o: "Family" if isinstance(o, FamilyOwner) else "Personal",
            disabled=len(owners) == 1,
        )
        submitted = st.form_submit_button("Add Asset", type="primary")

    if submitted:
        try:
            asset = run_async(ledger.open_asset(
                owner=owner,
                name=name,
                asset_type=asset_type,
                country=country,
                currency=COUNTRY_CURRENCY[country],
                opening_balance=Decimal(str(opening)),
                created_by=user.id,
                correlation_id=create_correlation_id(),
            ))
        except LedgerError as e:
            st.error(f"Could not add asset: {e}")
            return
        if user.primary_asset_id is None:
            user.primary_asset_id = asset.id
            components.storage.save_user(user)
        st.success(f"✅ {asset.name} added")
        st.rerun()


def render_asset_actions(components: AppComponents, user: User, asset):
    ledger = components.ledger
    st.markdown(f"**Type:** {asset.type.label}  \n**Country:** {asset.country.value}")

    new_name = st.text_input("Name", value=asset.name, key=f"name-{asset.id}")
    if st.button("Rename", key=f"rename-{asset.id}") and new_name != asset.name:
        try:
            run_async(ledger.rename_asset(asset.id, new_name))
            st.rerun()
        except LedgerError as e:
            st.error(str(e))

    new_balance = st.number_input(
        "Counted balance",
        min_value=0.0,
        value=float(asset.balance),
        step=1.0,
        key=f"balance-{asset.id}",
    )
    if st.button("Correct balance", key=f"correct-{asset.id}"):
        run_async(ledger.correct_balance(
            asset.id, Decimal(str(new_balance)), created_by=user.id
        ))
        st.rerun()

    if asset.id != user.primary_asset_id and st.button("Make primary", key=f"primary-{asset.id}"):
        user.primary_asset_id = asset.id
        components.storage.save_user(user)
        st.rerun()

    confirm = st.checkbox(
        "Also delete all transactions of this asset",
        key=f"confirm-delete-{asset.id}",
    )
    if st.button("🗑️ Delete asset", key=f"delete-{asset.id}", disabled=not confirm):
        removed = run_async(ledger.delete_asset(asset.id))
        if user.primary_asset_id == asset.id:
            user.primary_asset_id = None
            components.storage.save_user(user)
        st.success(f"Deleted {asset.name} and {removed} transactions")
        st.rerun()


def render_transactions_page(components: AppComponents, user: User):
    st.title("🧾 Transactions")
    ledger = components.ledger
    assets = run_async(ledger.list_assets(user.owners))
    if not assets:
        st.info("Add an asset first.")
        return
    names = {asset.id: asset.name for asset in assets}

    st.subheader("Record")
    with st.form("record"):
        col1, col2 = st.columns(2)
        with col1:
            kind = st.radio(
                "Type", options=list(TransactionKind), format_func=lambda x: x.label,
                horizontal=True,
            )
            asset = st.selectbox(
                "Asset", options=assets,
                format_func=lambda a: f"{a.name} ({a.currency.value})",
            )
            amount = st.number_input("Amount *", min_value=0.0, step=1.0)
        with col2:
            category = st.text_input("Category *", value="Lainnya")
            tx_date = st.date_input("Date", value=date.today())
            note = st.text_input("Note")
        submitted = st.form_submit_button("Save", type="primary")

    if submitted:
        meta = TransactionMeta(
            category=category, date=tx_date, note=note or None, created_by=user.id
        )
        record = ledger.record_income if kind is TransactionKind.INCOME else ledger.record_expense
        try:
            run_async(record(asset.id, Decimal(str(amount)), meta, create_correlation_id()))
            st.success("✅ Saved")
            st.rerun()
        except InsufficientBalanceError as e:
            st.error(
                f"Not enough balance: {format_money(e.balance, asset.currency)} available, "
                f"{format_money(e.requested, asset.currency)} needed"
            )
        except LedgerError as e:
            st.error(str(e))

    st.markdown("---")
    col1, col2 = st.columns(2)
    with col1:
        date_from = st.date_input("From", value=date.today().replace(day=1))
    with col2:
        date_to = st.date_input("To", value=date.today())

    transactions = run_async(ledger.list_transactions(
        user.owners, date_from=date_from, date_to=date_to
    ))
    if not transactions:
        st.info("No transactions in this period.")
        return

    for tx in transactions:
        sign = "+" if tx.kind is TransactionKind.INCOME else "-"
        title = (
            f"{tx.date.isoformat()} · {tx.category} · {names.get(tx.asset_id, '-')}"
            f" · {sign}{format_money(tx.amount, tx.currency)}"
        )
        with st.expander(title):
            with st.form(f"edit-{tx.id}"):
                new_asset = st.selectbox(
                    "Asset", options=assets,
                    index=next((i for i, a in enumerate(assets) if a.id == tx.asset_id), 0),
                    format_func=lambda a: f"{a.name} ({a.currency.value})",
                )
                new_amount = st.number_input(
                    "Amount", min_value=0.0, value=float(tx.amount), step=1.0
                )
                new_category = st.text_input("Category", value=tx.category)
                new_note = st.text_input("Note", value=tx.note or "")
                save = st.form_submit_button("Update")
            if save:
                try:
                    run_async(ledger.update_transaction(tx.id, TransactionUpdate(
                        asset_id=new_asset.id,
                        amount=Decimal(str(new_amount)),
                        category=new_category,
                        note=new_note or None,
                    )))
                    st.rerun()
                except LedgerError as e:
                    st.error(str(e))
            if st.button("🗑️ Delete", key=f"delete-tx-{tx.id}"):
                run_async(ledger.delete_transaction(tx.id))
                st.rerun()


def render_family_page(components: AppComponents, user: User):
    """Create, join or leave the family whose assets are shared."""
    st.title("👨‍👩‍👧 Family")
    families = components.families

    if user.family_id:
        try:
            family = run_async(families.get_family(user.family_id))
        except FamilyNotFoundError:
            st.error("Your family could not be found. Leave it and create a new one.")
            family = None

        if family is not None:
            st.markdown(f"### {family.name}")
            st.markdown("Share this family id so others can join:")
            st.code(str(family.id))
            members = run_async(families.members(family.id))
            st.markdown("**Members:** " + ", ".join(m.name for m in members))

        confirm = st.checkbox("I want to leave this family")
        if st.button("Leave family", disabled=not confirm):
            run_async(families.leave_family(user))
            st.success("You left the family. Family assets stay with the other members.")
            st.rerun()
        return

    st.info("Assets owned by a family are shared with every member.")
    col1, col2 = st.columns(2)
    with col1:
        with st.form("create_family"):
            st.subheader("Create a family")
            name = st.text_input("Family name *", placeholder="Keluarga Tanaka")
            create = st.form_submit_button("Create", type="primary")
        if create:
            try:
                family = run_async(families.create_family(user, name))
            except LedgerError as e:
                st.error(f"Could not create family: {e}")
                return
            st.success(f"✅ {family.name} created")
            st.rerun()
    with col2:
        with st.form("join_family"):
            st.subheader("Join a family")
            family_id = st.text_input("Family id *")
            join = st.form_submit_button("Join")
        if join:
            try:
                family = run_async(families.join_family(user, family_id))
            except FamilyNotFoundError:
                st.error("No family with that id")
                return
            st.success(f"✅ Joined {family.name}")
            st.rerun()


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Database", "database"),
        ("Gemini (AI parsing)", "gemini"),
        ("WAHA (WhatsApp)", "whatsapp"),
        ("Google Sheets (Reports)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
