"""Property tests: membership aggregate invariants.

Uses hypothesis to generate random sequences of storefront commands and
verify that replay is deterministic, card reconciliation converges, and
the card collections never contradict each other.
"""

from hypothesis import given, settings, strategies as st

from membership_sync.core.models import Customer, Subscription
from membership_sync.domain.events import CardAdded, CardRemoved, CardSentForActivation
from membership_sync.domain.membership import MembershipAggregate

CARDS = ["1001", "1002", "1003", "1004", "1005"]
STATUSES = ["on-hold", "active", "pending", "cancelled", "expired"]


def _customer(cards: list[str]) -> Customer:
    return Customer(
        id=42,
        meta_data=[{"key": "access_card_number", "value": ",".join(cards)}],
    )


def _subscription(status: str) -> Subscription:
    return Subscription(id=7, status=status, customer_id=42)


card_lists = st.lists(st.sampled_from(CARDS), max_size=5)

commands = st.lists(
    st.one_of(
        st.tuples(st.just("customer"), card_lists),
        st.tuples(st.just("subscription"), st.sampled_from(STATUSES)),
    ),
    min_size=1,
    max_size=15,
)


def _run(commands) -> MembershipAggregate:
    aggregate = MembershipAggregate(42)
    for kind, arg in commands:
        if kind == "customer":
            aggregate.update_customer(_customer(arg))
        else:
            aggregate.update_subscription(_subscription(arg))
    return aggregate


@settings(max_examples=200)
@given(commands=commands)
def test_replay_is_deterministic(commands):
    live = _run(commands)
    history = live.uncommitted_events

    first = MembershipAggregate.for_customer(42, history)
    second = MembershipAggregate.for_customer(42, history)

    assert first.state() == second.state()
    assert first.state() == live.state()


@settings(max_examples=200)
@given(commands=commands, cards=card_lists)
def test_reconciliation_converges(commands, cards):
    aggregate = _run(commands)
    aggregate.update_customer(_customer(cards))
    assert set(aggregate.cards_on_account) == set(cards)


@settings(max_examples=200)
@given(commands=commands, cards=card_lists)
def test_second_identical_update_emits_no_card_events(commands, cards):
    aggregate = _run(commands)
    aggregate.update_customer(_customer(cards))
    aggregate.clear_uncommitted()

    aggregate.update_customer(_customer(cards))

    assert [type(e).__name__ for e in aggregate.uncommitted_events] == ["CustomerUpdated"]


@settings(max_examples=200)
@given(commands=commands, cards=card_lists)
def test_minimal_card_diff(commands, cards):
    aggregate = _run(commands)
    before = set(aggregate.cards_on_account)
    aggregate.clear_uncommitted()

    aggregate.update_customer(_customer(cards))
    events = aggregate.uncommitted_events

    added = [e.card_number for e in events if isinstance(e, CardAdded)]
    removed = [e.card_number for e in events if isinstance(e, CardRemoved)]
    assert set(added) == set(cards) - before
    assert set(removed) == before - set(cards)
    assert len(added) == len(set(added))
    assert len(removed) == len(set(removed))


@settings(max_examples=200)
@given(commands=commands)
def test_backlog_and_sent_never_overlap(commands):
    aggregate = _run(commands)
    assert not set(aggregate.cards_needing_activation) & set(aggregate.cards_sent_for_activation)
    assert set(aggregate.cards_needing_activation) <= set(aggregate.cards_on_account)


@settings(max_examples=200)
@given(commands=commands)
def test_activation_only_for_declared_cards_of_members(commands):
    aggregate = _run(commands)
    sent = [e for e in aggregate.uncommitted_events if isinstance(e, CardSentForActivation)]
    if sent:
        assert aggregate.currently_a_member is True
    else:
        assert not aggregate.cards_sent_for_activation
