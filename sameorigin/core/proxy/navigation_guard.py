# core/proxy/navigation_guard.py
"""
Клиентский guard, внедряемый в HTML.

Оборачивает location.assign/replace, window.open и history.pushState/
replaceState: абсолютные URL на upstream, собранные скриптами страницы
во время выполнения, превращаются в относительные пути до перехода.
Статическая замена строк в разметке такие URL не ловит.
"""

import json
from string import Template

GUARD_VERSION = '1'

# Атрибут-маркер: по нему guard не внедряется повторно
GUARD_MARKER = 'data-sameorigin-guard'

_GUARD_TEMPLATE = Template("""<script $marker="$version">
(function () {
  // [protocol, host]
  var ORIGINS = $origins;
  function toRelative(url) {
    if (url === undefined || url === null) return url;
    try {
      var u = new URL(String(url), window.location.href);
      for (var i = 0; i < ORIGINS.length; i++) {
        if (u.protocol === ORIGINS[i][0] && u.host === ORIGINS[i][1]) return u.pathname + u.search + u.hash;
      }
    } catch (e) {}
    return url;
  }
  function wrap(target, name, index) {
    if (!target || typeof target[name] !== 'function') return;
    var original = target[name];
    try {
      target[name] = function () {
        var args = Array.prototype.slice.call(arguments);
        if (args.length > index) args[index] = toRelative(args[index]);
        return original.apply(this, args);
      };
    } catch (e) {}
  }
  wrap(window.location, 'assign', 0);
  wrap(window.location, 'replace', 0);
  wrap(window, 'open', 0);
  if (window.History) {
    wrap(window.History.prototype, 'pushState', 2);
    wrap(window.History.prototype, 'replaceState', 2);
  }
})();
</script>""")


def render_guard(origins) -> str:
    """
    Рендерит guard для набора origin upstream

    Args:
        origins: Origin upstream (основной и, если есть, резервный http)

    Returns:
        str: Готовый <script> тег
    """
    # протокол и хост хранятся раздельно: полная строка origin не должна
    # появиться в переписанной разметке
    pairs = [[f"{origin.scheme}:", origin.netloc] for origin in origins]
    # '</' экранируется, чтобы строка не закрыла тег script
    origins_js = json.dumps(pairs).replace('</', '<\\/')
    return _GUARD_TEMPLATE.substitute(
        marker=GUARD_MARKER,
        version=GUARD_VERSION,
        origins=origins_js,
    )
