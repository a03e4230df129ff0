import streamlit as st

from askdb.config import configure_logging, get_settings
from askdb.errors import AskDatabaseError, UnsafeQueryError
from askdb.pipeline import DatabaseOracle
from askdb.policies import compile_policy, load_policy

st.set_page_config(page_title="Ask your database", layout="wide")
st.title("Ask your database (tenant-scoped, read-only)")

s = get_settings()
configure_logging(s.log_level)


def show_error(e: AskDatabaseError, refused: bool = False) -> None:
    st.error(f"Refused: {e.message}" if refused else e.message)
    with st.expander("Details"):
        st.json(e.to_dict())


policy_path = st.sidebar.text_input("Policy file", value=s.policy_path)
policy = compile_policy(load_policy(policy_path))

# One oracle per browser session: it carries this session's tenant binding.
if "oracle" not in st.session_state or st.session_state.get("policy_path") != policy_path:
    st.session_state["oracle"] = DatabaseOracle.from_settings(s, policy)
    st.session_state["policy_path"] = policy_path
oracle: DatabaseOracle = st.session_state["oracle"]

secret_key = st.sidebar.text_input("Company secret key", type="password")
if st.sidebar.button("Authenticate"):
    try:
        if oracle.authenticate_with_secret_key(secret_key):
            st.sidebar.success("Authenticated.")
        else:
            st.sidebar.error("Unknown secret key.")
    except AskDatabaseError as e:
        st.sidebar.error(e.message)

if oracle.tenant is None:
    st.sidebar.info("Not authenticated" + (" (required)" if policy.require_tenant else ""))

question = st.text_input("Ask a question (natural language)", value="How many orders did we ship last month?")

col_ask, col_sql = st.columns(2)

if col_ask.button("Ask"):
    try:
        st.subheader("Answer")
        st.write(oracle.ask(question))
    except UnsafeQueryError as e:
        show_error(e, refused=True)

if col_sql.button("Show SQL"):
    try:
        st.subheader("Generated SQL")
        st.code(oracle.get_query(question), language="sql")
    except UnsafeQueryError as e:
        show_error(e, refused=True)
    except AskDatabaseError as e:
        show_error(e)
