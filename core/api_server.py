"""
Pin Wheel Portal API Server
Flask routes for raffle entry, draws, auto-entry, account profile and credentials, and admin user management

Run with: gunicorn 'core.api_server:create_app()'
"""

import os
import secrets
import logging
from functools import wraps

from dotenv import load_dotenv
from flask import Flask, request, jsonify, session, g

load_dotenv()

from core.drip_api import DripClient  # noqa: E402
from features.linking import (  # noqa: E402
    UserStore, CredentialLinker, AccountMerger, LinkOutcome, MergeError, MergeOutcome,
)
from pinwheel.auto_entry import AutoEntryManager  # noqa: E402
from pinwheel.clock import Clock, parse_window  # noqa: E402
from pinwheel.database import create_portal_engine, setup_portal_database  # noqa: E402
from pinwheel.draw import PinwheelDraw  # noqa: E402
from pinwheel.entries import EntryLedger  # noqa: E402
from pinwheel.entry_service import EntryService  # noqa: E402
from pinwheel.identity import IdentityResolver  # noqa: E402
from pinwheel.models import EnterOutcome, DrawOutcome  # noqa: E402
from pinwheel.notifications import WinnerNotifier  # noqa: E402
from utils.admin_policy import AdminPolicy  # noqa: E402
from utils.error_helpers import api_error_handler, json_error, json_success, safe_int  # noqa: E402
from utils.logging_config import sanitize_for_logs  # noqa: E402
from utils.redis_publisher import PortalRedisPublisher  # noqa: E402

logger = logging.getLogger(__name__)

ENTER_STATUS = {
    EnterOutcome.OK: 200,
    EnterOutcome.ALREADY_ENTERED: 409,
    EnterOutcome.ACCOUNT_NOT_FOUND: 404,
    EnterOutcome.INSUFFICIENT_BALANCE: 400,
    EnterOutcome.TRANSIENT_FAILURE: 503,
}

DRAW_STATUS = {
    DrawOutcome.DRAWN: 200,
    DrawOutcome.NO_ENTRIES: 200,
    DrawOutcome.ALREADY_DRAWN: 409,
}

LINK_STATUS = {
    LinkOutcome.LINKED: 200,
    LinkOutcome.ALREADY_LINKED_SELF: 200,
    LinkOutcome.ALREADY_LINKED_OTHER: 409,
    LinkOutcome.USER_NOT_FOUND: 404,
}

MERGE_STATUS = {
    MergeOutcome.MERGED: 200,
    MergeOutcome.NOT_FOUND: 404,
    MergeOutcome.SELF_MERGE: 409,
}


class PortalServices:
    """Everything the routes need, wired once per app"""

    def __init__(self, engine, points, clock, notifier, publisher, admin_policy):
        self.engine = engine
        self.points = points
        self.clock = clock
        self.admin_policy = admin_policy

        self.resolver = IdentityResolver(points)
        self.entries = EntryLedger(engine, clock)
        self.draw = PinwheelDraw(engine, self.entries, clock, notifier=notifier, publisher=publisher)
        self.entry_service = EntryService(self.resolver, self.entries, points, clock)
        self.auto_entry = AutoEntryManager(engine, self.entry_service, clock, publisher=publisher)
        self.users = UserStore(engine)
        self.linker = CredentialLinker(engine, points, self.users)
        self.merger = AccountMerger(engine, points, self.users)


def build_services(engine=None, points=None, clock=None, notifier=None, publisher=None, admin_policy=None,
                   setup_database=True):
    """Create the service graph from the environment, overriding any piece that is passed in"""
    if engine is None:
        engine = create_portal_engine()
    if setup_database:
        setup_portal_database(engine)

    return PortalServices(
        engine=engine,
        points=points or DripClient(),
        clock=clock or Clock(),
        notifier=notifier if notifier is not None else WinnerNotifier(),
        publisher=publisher if publisher is not None else PortalRedisPublisher(),
        admin_policy=admin_policy or AdminPolicy.from_env(),
    )


def _bearer_token():
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    return auth_header[len('Bearer '):].strip()


def _payload():
    return request.get_json(silent=True) or {}


def create_app(services=None, secret_key=None, **overrides):
    """
    Flask application factory

    Args:
        services: Prebuilt PortalServices (tests)
        secret_key: Session signing key (default FLASK_SECRET_KEY)
        **overrides: Passed to build_services when services is None

    Returns:
        Flask app
    """
    app = Flask(__name__)
    app.secret_key = secret_key or os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)
    if not (secret_key or os.getenv("FLASK_SECRET_KEY")):
        logger.warning("FLASK_SECRET_KEY not set, using random key (sessions reset on restart)")

    services = services or build_services(**overrides)
    app.extensions['portal'] = services

    # -------------------------
    # 🔒 Access control
    # -------------------------
    def session_principal():
        user_id = session.get('user_id')
        if not user_id:
            return None
        user = services.users.get_user(user_id)
        if user is None:
            return None
        identifiers = [user.get('email')]
        identifiers += [c['identifier'] for c in services.users.get_credentials(user_id)]
        return user, identifiers

    def require_api_key(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not services.admin_policy.check_api_key(_bearer_token()):
                return json_error('Unauthorized', 401, code='unauthorized')
            g.actor = 'api_key'
            return func(*args, **kwargs)
        return wrapper

    def require_user(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            user_id = session.get('user_id')
            if not user_id:
                return json_error('Unauthorized', 401, code='unauthorized')
            g.user_id = user_id
            return func(*args, **kwargs)
        return wrapper

    def require_admin(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if services.admin_policy.check_api_key(_bearer_token()):
                g.actor = 'api_key'
                return func(*args, **kwargs)

            principal = session_principal()
            if principal is None:
                return json_error('Unauthorized', 401, code='unauthorized')
            user, identifiers = principal
            if not services.admin_policy.is_admin(identifiers):
                logger.warning(f"Admin access denied for user {user['id']}")
                return json_error('Admin access required', 403, code='forbidden')
            g.actor = f"admin:{user['id']}"
            return func(*args, **kwargs)
        return wrapper

    # -------------------------
    # Health
    # -------------------------
    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    # -------------------------
    # 🎡 Pin Wheel
    # -------------------------
    @app.route('/api/pinwheel/enter', methods=['POST'])
    @api_error_handler
    def pinwheel_enter():
        data = _payload()
        identifier = data.get('identifier') or data.get('wallet') or data.get('walletAddress')
        if not identifier:
            return json_error('Identifier is required', 400, code='invalid_request')

        result = services.entry_service.enter(identifier, data.get('hint'))
        return jsonify(result.to_dict()), ENTER_STATUS[result.outcome]

    @app.route('/api/pinwheel/status')
    @api_error_handler
    def pinwheel_status():
        status = services.entry_service.status(request.args.get('identifier'), request.args.get('hint'))
        return json_success(**status)

    @app.route('/api/pinwheel/draw', methods=['GET'])
    @require_api_key
    @api_error_handler
    def pinwheel_draw_cron():
        run = services.draw.run_draw(triggered_by='cron')
        return jsonify(run.to_dict()), DRAW_STATUS[run.outcome]

    @app.route('/api/pinwheel/draw', methods=['POST'])
    @require_admin
    @api_error_handler
    def pinwheel_draw_manual():
        window = _payload().get('window')
        run = services.draw.run_draw(
            window=parse_window(window) if window else None,
            triggered_by=g.actor,
        )
        return jsonify(run.to_dict()), DRAW_STATUS[run.outcome]

    @app.route('/api/pinwheel/auto-entry', methods=['GET'])
    @api_error_handler
    def pinwheel_auto_entry_status():
        identifier = request.args.get('identifier') or request.args.get('wallet')
        if not identifier:
            return json_error('Identifier is required', 400, code='invalid_request')
        return json_success(enabled=services.auto_entry.is_auto_entry_enabled(identifier))

    @app.route('/api/pinwheel/auto-entry', methods=['POST'])
    @api_error_handler
    def pinwheel_auto_entry_toggle():
        data = _payload()
        identifier = data.get('identifier') or data.get('wallet')
        if not identifier or 'enabled' not in data:
            return json_error('identifier and enabled are required', 400, code='invalid_request')

        result = services.auto_entry.set_auto_entry(identifier, bool(data['enabled']), data.get('hint'))
        return jsonify(result), 200 if result['success'] else 404

    @app.route('/api/pinwheel/auto-enter', methods=['GET'])
    @api_error_handler
    def pinwheel_auto_enter_cron():
        report = services.auto_entry.run_batch()
        return json_success(**report.to_dict())

    @app.route('/api/pinwheel/auto-enter', methods=['POST'])
    @require_api_key
    @api_error_handler
    def pinwheel_auto_enter_manual():
        report = services.auto_entry.run_batch()
        return json_success(**report.to_dict())

    @app.route('/api/pinwheel/winners')
    @api_error_handler
    def pinwheel_winners():
        limit = min(max(safe_int(request.args.get('limit'), 10), 1), 100)
        return json_success(winners=services.draw.get_winners(limit))

    @app.route('/api/pinwheel/last-spin')
    @api_error_handler
    def pinwheel_last_spin():
        account_ref = None
        identifier = request.args.get('identifier')
        if identifier:
            account = services.resolver.resolve(identifier, request.args.get('hint'))
            account_ref = account.account_id if account else None
        return json_success(spin=services.draw.get_last_spin(account_ref))

    # -------------------------
    # 🔗 Account credentials
    # -------------------------
    @app.route('/api/account/credentials', methods=['GET'])
    @require_user
    @api_error_handler
    def account_credentials():
        credentials = services.linker.list_credentials(g.user_id, request.args.get('type'))
        return json_success(credentials=credentials)

    @app.route('/api/account/credentials', methods=['POST'])
    @require_user
    @api_error_handler
    def account_link_credential():
        data = _payload()
        logger.info(f"Link credential request: {sanitize_for_logs(data)}")
        credential_type = data.get('type')
        identifier = data.get('identifier')
        if not credential_type or not identifier:
            return json_error('type and identifier are required', 400, code='invalid_request')

        result = services.linker.link_credential(g.user_id, credential_type, identifier, data.get('display_name'))
        return jsonify(result.to_dict()), LINK_STATUS[result.outcome]

    @app.route('/api/account/credentials', methods=['DELETE'])
    @require_user
    @api_error_handler
    def account_unlink_credential():
        data = _payload()
        credential_type = data.get('type') or request.args.get('type')
        identifier = data.get('identifier') or request.args.get('identifier')
        if not credential_type or not identifier:
            return json_error('type and identifier are required', 400, code='invalid_request')

        if not services.linker.unlink_credential(g.user_id, credential_type, identifier):
            return json_error('Credential not found', 404, code='not_found')
        return json_success(message='Credential removed')

    @app.route('/api/account/prizes')
    @require_user
    @api_error_handler
    def account_prizes():
        return json_success(prizes=services.draw.get_prizes_for_user(g.user_id))

    # -------------------------
    # 👤 Profile
    # -------------------------
    @app.route('/api/account/address', methods=['GET'])
    @require_user
    @api_error_handler
    def account_address():
        return json_success(address=services.users.get_shipping_address(g.user_id))

    @app.route('/api/account/address', methods=['POST'])
    @require_user
    @api_error_handler
    def account_save_address():
        if not services.users.set_shipping_address(g.user_id, _payload()):
            return json_error('User not found', 404, code='not_found')
        return json_success(address=services.users.get_shipping_address(g.user_id))

    @app.route('/api/account/display-name', methods=['GET'])
    @require_user
    @api_error_handler
    def account_display_name():
        user = services.users.get_user(g.user_id)
        return json_success(display_name=user['display_name'] if user else None)

    @app.route('/api/account/display-name', methods=['POST'])
    @require_user
    @api_error_handler
    def account_set_display_name():
        data = _payload()
        display_name = services.users.set_display_name(
            g.user_id, data.get('display_name', data.get('displayName'))
        )
        if display_name is None:
            return json_error('User not found', 404, code='not_found')

        # Best-effort sync to Drip
        account_ref = services.users.get_user(g.user_id)['drip_account_id']
        if account_ref and not services.points.update_display_name(account_ref, display_name):
            logger.warning(f"Display name for {g.user_id} saved locally but not in Drip")
        return json_success(display_name=display_name)

    # -------------------------
    # 🛠️ Admin
    # -------------------------
    @app.route('/api/admin/pinwheel-entries')
    @require_admin
    @api_error_handler
    def admin_pinwheel_entries():
        date_param = request.args.get('date')
        window = parse_window(date_param) if date_param else services.entries.current_window()
        entries = services.entries.list_entries(window)
        return json_success(date=window.isoformat(), entries=entries, total=len(entries))

    @app.route('/api/admin/pinwheel-winners', methods=['GET'])
    @require_admin
    @api_error_handler
    def admin_pinwheel_winners():
        return json_success(winners=services.draw.get_admin_winners())

    @app.route('/api/admin/pinwheel-winners', methods=['PATCH'])
    @require_admin
    @api_error_handler
    def admin_update_winner():
        data = _payload()
        winner_id = data.get('id')
        if not winner_id or 'shipped' not in data:
            return json_error('id and shipped are required', 400, code='invalid_request')

        if not services.draw.mark_shipped(winner_id, bool(data['shipped'])):
            return json_error('Winner not found', 404, code='not_found')
        return json_success(id=winner_id, shipped=bool(data['shipped']))

    @app.route('/api/admin/users/duplicates')
    @require_admin
    @api_error_handler
    def admin_duplicates():
        groups = services.merger.find_duplicates(with_balances=True)
        return json_success(
            duplicates=[group.to_dict() for group in groups],
            total_duplicate_groups=len(groups),
        )

    @app.route('/api/admin/users/merge', methods=['POST'])
    @require_admin
    @api_error_handler
    def admin_merge_users():
        data = _payload()
        keep_user_id = data.get('keep_user_id') or data.get('keepUserId')
        delete_user_id = data.get('delete_user_id') or data.get('deleteUserId')
        if not keep_user_id or not delete_user_id:
            return json_error('keep_user_id and delete_user_id are required', 400, code='invalid_request')

        try:
            result = services.merger.merge(keep_user_id, delete_user_id)
        except MergeError as e:
            return json_error(str(e), 500, code='merge_failed', log=e.log, failed_step=e.step)

        logger.info(f"Merge requested by {g.actor}: {result.outcome.value}")
        return jsonify(result.to_dict()), MERGE_STATUS[result.outcome]

    @app.route('/api/admin/users/merge-all', methods=['POST'])
    @require_admin
    @api_error_handler
    def admin_merge_all():
        results = services.merger.merge_all()
        merged = sum(1 for r in results if r.outcome is MergeOutcome.MERGED)
        return json_success(
            merged=merged,
            failed=len(results) - merged,
            results=[r.to_dict() for r in results],
        )

    @app.route('/api/admin/users/search')
    @require_admin
    @api_error_handler
    def admin_search_users():
        return json_success(users=services.users.search_users(request.args.get('q')))

    @app.route('/api/admin/users/<user_id>', methods=['GET'])
    @require_admin
    @api_error_handler
    def admin_user_detail(user_id):
        user = services.users.get_user(user_id)
        if user is None:
            return json_error('User not found', 404, code='not_found')
        return json_success(
            user=user,
            credentials=services.users.get_credentials(user_id),
            submissions_count=services.users.count_submissions(user_id),
            pinwheel_wins=services.draw.get_prizes_for_user(user_id),
        )

    @app.route('/api/admin/users/<user_id>', methods=['DELETE'])
    @require_admin
    @api_error_handler
    def admin_delete_user(user_id):
        log = services.users.delete_user(user_id)
        if log is None:
            return json_error('User not found', 404, code='not_found')
        logger.info(f"User {user_id} deleted by {g.actor}")
        return json_success(message='User deleted', log=log)

    @app.route('/api/admin/users/<user_id>/grit', methods=['GET'])
    @require_admin
    @api_error_handler
    def admin_user_grit(user_id):
        user = services.users.get_user(user_id)
        if user is None:
            return json_error('User not found', 404, code='not_found')
        if not user['drip_account_id']:
            return json_success(grit_balance=0, has_drip_account=False)

        balance = services.points.get_balance(user['drip_account_id'])
        return json_success(
            grit_balance=balance or 0,
            has_drip_account=True,
            drip_account_id=user['drip_account_id'],
        )

    @app.route('/api/admin/users/<user_id>/grit', methods=['POST'])
    @require_admin
    @api_error_handler
    def admin_adjust_grit(user_id):
        data = _payload()
        amount = data.get('amount')
        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            return json_error('Amount must be a non-zero integer', 400, code='invalid_request')

        user = services.users.get_user(user_id)
        if user is None:
            return json_error('User not found', 404, code='not_found')
        account_ref = user['drip_account_id']
        if not account_ref:
            return json_error('User has no Drip account linked', 400, code='no_drip_account')

        account = services.points.find_account_by_id(account_ref)
        if account is None:
            return json_error('Drip account not found', 404, code='account_not_found')
        if amount < 0 and -amount > account.points:
            return json_error(
                f"Insufficient balance. User has {account.points} GRIT, cannot deduct {-amount}",
                400, code='insufficient_balance',
            )

        reason = data.get('reason')
        memo = reason or (f"Admin credit: {amount} GRIT" if amount > 0 else f"Admin debit: {-amount} GRIT")
        adjustment = services.points.adjust_balance(account_ref, amount, memo, currency_ref=account.currency_ref)
        if not adjustment.success:
            return json_error(adjustment.error or 'Failed to adjust GRIT balance', 503, code='transient_failure')

        logger.info(f"💰 {g.actor} adjusted {account_ref} by {amount} GRIT")
        return json_success(
            old_balance=account.points,
            new_balance=adjustment.new_balance if adjustment.new_balance is not None else account.points + amount,
            adjustment=amount,
            reason=reason,
        )

    return app
