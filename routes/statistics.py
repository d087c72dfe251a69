from flask import Blueprint, request, jsonify
from services.donations import clear_statistics_cache, get_statistics

statistics_bp = Blueprint('statistics', __name__)


@statistics_bp.route('/api/statistics', methods=['GET'])
def statistics():
    """ Public platform numbers for the landing page. ?fresh=1 skips the cache. """
    fresh = request.args.get('fresh') in ('1', 'true')
    if fresh:
        clear_statistics_cache()
    return jsonify(get_statistics(use_cache=not fresh)), 200
