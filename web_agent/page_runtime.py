"""
In-page runtime for Web Agent.

The JavaScript below is installed into every page (as an init script and, if
missing, on demand). It exposes ``window.__agent`` with element discovery and
mutation primitives. Every function returns a plain object with an ``ok``
flag; the bridge serializes the result to JSON.
"""

import json

from .utils import SENSITIVE_FIELD_KEYWORDS

RUNTIME_NAMESPACE = "__agent"

# Functions the bridge may call; readiness requires all of them
RUNTIME_FUNCTIONS = (
    "ping",
    "findElements",
    "click",
    "typeText",
    "select",
    "scroll",
    "waitFor",
    "extract",
    "rect",
)

RUNTIME_VERSION = "1"

MAX_SUMMARIES = 50
SUMMARY_TEXT_CHARS = 200
EXTRACT_MAX_CHARS = 20000

AGENT_RUNTIME_JS = r'''
(() => {
  'use strict';
  if (window.__agent && window.__agent.__version === '%(version)s') return;

  const INTERACTIVE = 'a,button,input,select,textarea,summary,article,[role],[contenteditable="true"],[tabindex]';
  const TEXT_INPUT_TYPES = ['', 'text', 'search', 'email', 'url', 'tel', 'number', 'password'];
  const SENSITIVE_NAMES = %(sensitive_names)s;
  const MAX_SUMMARIES = %(max_summaries)d;
  const TEXT_CHARS = %(text_chars)d;
  const EXTRACT_CHARS = %(extract_chars)d;
  const POLL_MS = 100;

  const sleep = (ms) => new Promise(r => setTimeout(r, ms));

  function isVisible(el) {
    if (!el || !el.getBoundingClientRect) return false;
    const rect = el.getBoundingClientRect();
    const style = window.getComputedStyle(el);
    return rect.width > 0 && rect.height > 0 &&
           style.visibility !== 'hidden' && style.display !== 'none';
  }

  function roleFor(el) {
    const explicit = el.getAttribute && el.getAttribute('role');
    if (explicit) return explicit.toLowerCase();
    const tag = (el.tagName || '').toLowerCase();
    if (tag === 'a') return 'link';
    if (tag === 'button' || tag === 'summary') return 'button';
    if (tag === 'textarea') return 'textbox';
    if (tag === 'select') return 'select';
    if (tag === 'article') return 'article';
    if (tag === 'input') {
      const type = (el.getAttribute('type') || '').toLowerCase();
      if (TEXT_INPUT_TYPES.includes(type)) return 'textbox';
      if (type === 'checkbox' || type === 'radio') return type;
      if (type === 'submit' || type === 'button' || type === 'reset') return 'button';
      return 'input';
    }
    if (el.isContentEditable) return 'textbox';
    return tag;
  }

  function roleMatches(el, role) {
    const wanted = String(role).toLowerCase();
    if (roleFor(el) === wanted) return true;
    return wanted === 'input' && (el.tagName || '').toLowerCase() === 'input';
  }

  function textOf(el) {
    return (el.innerText || el.textContent || '').trim();
  }

  function nameFor(el) {
    const attr = el.getAttribute && (el.getAttribute('aria-label') || el.getAttribute('name') ||
                                     el.getAttribute('placeholder') || el.getAttribute('title'));
    return attr || textOf(el);
  }

  function isSensitiveInput(el) {
    const type = (el.type || '').toLowerCase();
    if (type === 'password') return true;
    const name = (el.name || '').toLowerCase();
    const id = (el.id || '').toLowerCase();
    return SENSITIVE_NAMES.some(k => name.includes(k) || id.includes(k));
  }

  function center(el) {
    const r = el.getBoundingClientRect();
    return { x: r.x + r.width / 2, y: r.y + r.height / 2 };
  }

  function byXPath(expr) {
    const out = [];
    const snap = document.evaluate(expr, document, null, XPathResult.ORDERED_NODE_SNAPSHOT_TYPE, null);
    for (let i = 0; i < snap.snapshotLength; i++) out.push(snap.snapshotItem(i));
    return out;
  }

  function describe(locator) {
    return ['role', 'name', 'text', 'css', 'xpath', 'near', 'nth']
      .filter(k => locator[k] !== undefined && locator[k] !== null)
      .map(k => k + '=' + locator[k]).join(' ');
  }

  function findByLocator(locator) {
    locator = locator || {};
    let nodes;
    if (locator.css) {
      nodes = Array.from(document.querySelectorAll(locator.css));
    } else if (locator.xpath) {
      nodes = byXPath(locator.xpath);
    } else {
      nodes = Array.from(document.querySelectorAll(INTERACTIVE));
      const needle = (locator.text || locator.name || '').toLowerCase();
      if (needle) {
        nodes = nodes.filter(el =>
          textOf(el).toLowerCase().includes(needle) ||
          String(nameFor(el)).toLowerCase().includes(needle));
      }
    }
    if (locator.role) {
      nodes = nodes.filter(el => roleMatches(el, locator.role));
    }
    if (locator.near) {
      const anchorNeedle = String(locator.near).toLowerCase();
      const anchor = Array.from(document.body ? document.body.querySelectorAll('*') : [])
        .filter(el => textOf(el).toLowerCase().includes(anchorNeedle))
        .sort((a, b) => textOf(a).length - textOf(b).length)[0];
      if (anchor) {
        const c = center(anchor);
        const dist = (el) => { const p = center(el); return Math.hypot(p.x - c.x, p.y - c.y); };
        nodes = nodes.slice().sort((a, b) => dist(a) - dist(b));
      }
    }
    if (typeof locator.nth === 'number') {
      return nodes[locator.nth] ? [nodes[locator.nth]] : [];
    }
    return nodes;
  }

  function firstVisible(locator) {
    return findByLocator(locator).find(isVisible) || null;
  }

  function toSummary(el, idx, hint) {
    const rect = el.getBoundingClientRect();
    return {
      id: String(idx),
      role: roleFor(el),
      name: String(nameFor(el)).slice(0, TEXT_CHARS),
      text: isSensitiveInput(el) ? '' : textOf(el).slice(0, TEXT_CHARS),
      isVisible: isVisible(el),
      boundingBox: { x: rect.x, y: rect.y, width: rect.width, height: rect.height },
      locatorHint: hint || null,
    };
  }

  function fire(el, type) {
    el.dispatchEvent(new Event(type, { bubbles: true }));
  }

  function setNativeValue(el, value) {
    const proto = Object.getPrototypeOf(el);
    const desc = Object.getOwnPropertyDescriptor(proto, 'value');
    if (desc && desc.set) desc.set.call(el, value); else el.value = value;
  }

  const agent = {};
  agent.__version = '%(version)s';

  agent.ping = function() {
    return { ok: true, version: agent.__version, readyState: document.readyState };
  };

  agent.findElements = function(locator) {
    const hint = describe(locator || {});
    const nodes = findByLocator(locator);
    return { ok: true, count: nodes.length,
             elements: nodes.slice(0, MAX_SUMMARIES).map((el, i) => toSummary(el, i, hint)) };
  };

  agent.click = function(locator) {
    const el = firstVisible(locator);
    if (!el) return { ok: false, error: 'not found' };
    if (el.scrollIntoView) el.scrollIntoView({ block: 'center' });
    el.click();
    return { ok: true };
  };

  agent.typeText = function(locator, text, submit) {
    const el = firstVisible(locator);
    if (!el) return { ok: false, error: 'not found' };
    const tag = (el.tagName || '').toLowerCase();
    if (tag !== 'input' && tag !== 'textarea' && !el.isContentEditable) {
      return { ok: false, error: 'not editable' };
    }
    if (isSensitiveInput(el)) return { ok: false, error: 'sensitive field' };
    el.focus();
    const value = String(text == null ? '' : text);
    if (tag === 'input' || tag === 'textarea') {
      setNativeValue(el, value);
      fire(el, 'input');
      fire(el, 'change');
    } else {
      el.textContent = value;
      fire(el, 'input');
    }
    if (submit) {
      const form = el.form || el.closest('form');
      if (form) {
        if (form.requestSubmit) form.requestSubmit(); else form.submit();
      } else {
        el.dispatchEvent(new KeyboardEvent('keydown', { key: 'Enter', bubbles: true }));
      }
    }
    return { ok: true };
  };

  agent.select = function(locator, value) {
    const el = firstVisible(locator);
    if (!el || (el.tagName || '').toLowerCase() !== 'select') return { ok: false, error: 'not a select' };
    const wanted = String(value == null ? '' : value);
    const option = Array.from(el.options).find(o => o.value === wanted) ||
                   Array.from(el.options).find(o => o.text.trim().toLowerCase() === wanted.toLowerCase());
    if (!option) return { ok: false, error: 'no such option' };
    el.value = option.value;
    fire(el, 'input');
    fire(el, 'change');
    return { ok: true, value: option.value };
  };

  agent.scroll = function(locator, direction, amountPx) {
    const amt = typeof amountPx === 'number' ? amountPx : 600;
    const dir = String(direction || 'down').toLowerCase();
    const dy = dir === 'up' ? -amt : (dir === 'down' ? amt : 0);
    const dx = dir === 'left' ? -amt : (dir === 'right' ? amt : 0);
    const hasLocator = locator && Object.keys(locator).length > 0;
    const el = hasLocator ? findByLocator(locator)[0] : null;
    if (hasLocator && !el) return { ok: false, error: 'not found' };
    if (el) el.scrollBy({ left: dx, top: dy, behavior: 'smooth' });
    else window.scrollBy({ left: dx, top: dy, behavior: 'smooth' });
    return { ok: true };
  };

  agent.waitFor = async function(predicate, timeoutMs) {
    const start = Date.now();
    const timeout = typeof timeoutMs === 'number' ? timeoutMs : 5000;
    const expired = () => Date.now() - start > timeout;
    predicate = predicate || {};
    if (typeof predicate.delayMs === 'number') {
      await sleep(Math.min(predicate.delayMs, timeout));
      return { ok: true };
    }
    if (predicate.readyState) {
      while (document.readyState !== 'complete') {
        if (expired()) return { ok: false, error: 'timeout' };
        await sleep(POLL_MS);
      }
      return { ok: true };
    }
    if (predicate.selector) {
      while (true) {
        const node = document.querySelector(predicate.selector);
        if (node && isVisible(node)) return { ok: true };
        if (expired()) return { ok: false, error: 'timeout' };
        await sleep(POLL_MS);
      }
    }
    if (predicate.networkIdle) {
      const quietMs = 500;
      const count = () => (performance.getEntriesByType ? performance.getEntriesByType('resource').length : 0);
      let last = count();
      let stableSince = Date.now();
      while (true) {
        await sleep(POLL_MS);
        const now = count();
        if (now !== last) { last = now; stableSince = Date.now(); }
        if (Date.now() - stableSince >= quietMs) return { ok: true };
        if (expired()) return { ok: false, error: 'timeout' };
      }
    }
    return { ok: false, error: 'no predicate' };
  };

  agent.extract = function(readMode, selector) {
    const mode = String(readMode || 'selection').toLowerCase();
    let text = '';
    if (mode === 'selection') {
      text = String(window.getSelection ? window.getSelection() : '');
    } else if (mode === 'selector') {
      if (!selector) return { ok: false, error: 'missing selector' };
      const el = document.querySelector(selector);
      if (!el) return { ok: false, error: 'not found' };
      if ((el.tagName || '').toLowerCase() === 'input' || (el.tagName || '').toLowerCase() === 'textarea') {
        if (isSensitiveInput(el)) return { ok: false, error: 'sensitive field' };
        text = el.value || '';
      } else {
        text = textOf(el);
      }
    } else {
      const root = document.querySelector('main') || document.querySelector('article') || document.body;
      text = root ? textOf(root) : '';
    }
    text = text.replace(/\s+/g, ' ').trim().slice(0, EXTRACT_CHARS);
    return { ok: true, text: text };
  };

  agent.rect = function(locator) {
    const el = firstVisible(locator);
    if (!el) return { ok: false, error: 'not found' };
    const r = el.getBoundingClientRect();
    return { ok: true, rect: { x: r.x, y: r.y, width: r.width, height: r.height } };
  };

  window.__agent = agent;
})();
''' % {
    "version": RUNTIME_VERSION,
    "max_summaries": MAX_SUMMARIES,
    "text_chars": SUMMARY_TEXT_CHARS,
    "extract_chars": EXTRACT_MAX_CHARS,
    "sensitive_names": json.dumps(list(SENSITIVE_FIELD_KEYWORDS)),
}


def readiness_probe_script() -> str:
    """Script that evaluates to true once every runtime function exists."""
    checks = " && ".join(
        f"typeof window.{RUNTIME_NAMESPACE}.{name} === 'function'" for name in RUNTIME_FUNCTIONS
    )
    return f"(() => !!(window.{RUNTIME_NAMESPACE} && {checks}))()"
