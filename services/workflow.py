"""
Donation lifecycle.

    available -> claimed -> on_the_way -> picked_up -> completed
    available -> cancelled

Each action is allowed from a fixed set of states and for one kind of actor.
The status write is the primary result; history, notifications and emails are
secondary effects whose failures are only logged.
"""
from collections import namedtuple
from flask import current_app
from models import utcnow
from services import donations as store
from services.effects import fire_and_forget
from services.errors import PermissionDenied, TransitionError
from services.notifications import notify_donor_of_status
from utils import send_email, claim_email_body

Transition = namedtuple('Transition', ['sources', 'target', 'actor'])

# actor: 'ngo' = any NGO, 'owner' = the donor who posted it, 'claimer' = the claiming NGO
TRANSITIONS = {
    'claim': Transition(('available',), 'claimed', 'ngo'),
    'cancel': Transition(('available',), 'cancelled', 'owner'),
    'en_route': Transition(('claimed',), 'on_the_way', 'claimer'),
    'collect': Transition(('claimed', 'on_the_way'), 'picked_up', 'claimer'),
    'deliver': Transition(('picked_up',), 'completed', 'claimer'),
}

ACTION_LABELS = {
    'claim': 'Donation claimed',
    'cancel': 'Donation cancelled',
    'en_route': 'On the way to pickup',
    'collect': 'Food collected',
    'deliver': 'Food delivered',
}


def check_transition(donation, action, actor):
    """Returns the target status or raises PermissionDenied / TransitionError."""
    transition = TRANSITIONS.get(action)
    if transition is None:
        raise TransitionError(f"Unknown action '{action}'")

    if transition.actor == 'ngo':
        if actor.role != 'ngo':
            raise PermissionDenied('Only registered NGOs can claim food.')
        if donation.claimed_by == actor.id:
            raise TransitionError('You have already claimed this donation.')
    elif transition.actor == 'owner':
        if actor.role != 'donor' or donation.donor_id != actor.id:
            raise PermissionDenied('Unauthorized. You did not post this.')
    elif transition.actor == 'claimer':
        if actor.role != 'ngo' or donation.claimed_by != actor.id:
            raise PermissionDenied('Only the NGO that claimed this donation can update it.')

    if donation.status not in transition.sources:
        raise TransitionError(f"Cannot {action.replace('_', ' ')} a donation that is {donation.status.replace('_', ' ')}.")

    return transition.target


def allowed_actions(donation, actor):
    """Actions `actor` could take on `donation` right now."""
    if actor is None:
        return []
    actions = []
    for action in TRANSITIONS:
        try:
            check_transition(donation, action, actor)
        except (PermissionDenied, TransitionError):
            continue
        actions.append(action)
    return actions


# ==========================================
#  1. CLAIM
# ==========================================
def claim_donation(donation_id, actor):
    """
    Reserve an available donation for the acting NGO.

    The claim write decides success. The donor notification, history entry
    and email are fired afterwards and cannot turn a claim into a failure.
    """
    donation = store.get_donation(donation_id)
    check_transition(donation, 'claim', actor)

    actor_id, actor_name = actor.id, actor.display_name
    donation = store.update_donation(donation_id, {
        'status': 'claimed',
        'claimed_by': actor_id,
        'claimed_by_name': actor_name,
        'claimed_at': utcnow()
    })

    donor_id, food_name = donation.donor_id, donation.food_name
    donor_email = donation.donor.email if donation.donor else None

    def email_donor():
        if donor_email:
            send_email(f"Someone claimed your food: {food_name}", [donor_email],
                       claim_email_body(food_name, actor_name))

    fire_and_forget(
        lambda: notify_donor_of_status(donor_id, donation_id, food_name, 'claimed', actor_name),
        lambda: store.add_status_history(donation_id, 'claimed', actor_id, actor_name, ACTION_LABELS['claim']),
        email_donor,
        label='claim'
    )
    current_app.logger.info("Donation %s claimed by user %s", donation_id, actor_id)
    return donation


# ==========================================
#  2. CANCEL (Donor)
# ==========================================
def cancel_donation(donation_id, actor, notes=''):
    donation = store.get_donation(donation_id)
    check_transition(donation, 'cancel', actor)

    donation = store.update_donation(donation_id, {'status': 'cancelled'})

    actor_id, actor_name = actor.id, actor.display_name
    fire_and_forget(
        lambda: store.add_status_history(donation_id, 'cancelled', actor_id, actor_name,
                                         notes or ACTION_LABELS['cancel']),
        label='cancel'
    )
    return donation


# ==========================================
#  3. ADVANCE (Claiming NGO)
# ==========================================
def advance_donation(donation_id, action, actor, notes=''):
    if action in ('claim', 'cancel'):
        raise TransitionError(f"'{action}' is not a progress update.")

    donation = store.get_donation(donation_id)
    target = check_transition(donation, action, actor)

    return store.update_donation_status_and_notify(
        donation_id, target, actor.id, actor.display_name, notes or ACTION_LABELS[action]
    )
