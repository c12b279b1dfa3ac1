"""Demo page: two browser tabs chatting through the relay."""

from __future__ import annotations

import html
import json

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse

router = APIRouter(tags=["demo"])

_PAGE = """<html>
	<body>
		<p>
			Click <a href="/?user_id=a&recipient=b">this link</a> and then
			<a target="_blank" href="/?user_id=b&recipient=a">this link</a>.<br /><br />

			"Send Message" goes over the websocket to one recipient. "Broadcast Message"
			is POSTed to the server, which forwards it to every connected websocket.<br /><br />

			Messages will appear below the forms.
		</p>
		<div>
			<label for="recipient_message">Send Message</label>
			<input id="recipient_message">
			<label for="owner">Recipient</label>
			<input value="__RECIPIENT_ATTR__" type="text" id="owner" placeholder="Enter recipient identifier">
			<button id="recipient_btn">Send</button>
		</div>
		<div>
			<label for="broadcast_message">Broadcast Message</label>
			<input id="broadcast_message">
			<button id="broadcast_btn">Broadcast</button>
		</div>
		<div id="root"></div>
		<script type="application/javascript">
			const user_id = __USER_ID_JS__;
			const r = document.getElementById('root');
			const o = document.getElementById('owner');
			const bm = document.getElementById('broadcast_message');
			const rm = document.getElementById('recipient_message');

			const scheme = location.protocol === 'https:' ? 'wss://' : 'ws://';
			const ws = new WebSocket(
				scheme + location.host + __WS_PATH_JS__ + '?' + encodeURIComponent(__OWNER_PARAM_JS__) + '=' + encodeURIComponent(user_id)
			);

			function onMessage({message, from}) {
				const p = document.createElement('p');
				p.textContent = (from ? from + ": " : "<BROADCAST> ") + message;
				r.appendChild(p);
			}

			ws.addEventListener('message', e => onMessage(JSON.parse(e.data)));

			document.getElementById("recipient_btn").addEventListener('click', () => {
				const message = rm.value;
				rm.value = '';
				onMessage({message, from: user_id});
				ws.send(JSON.stringify({message, recipient: o.value}));
			});

			document.getElementById("broadcast_btn").addEventListener('click', () => {
				const message = bm.value;
				bm.value = '';
				fetch('/broadcast', {
					body: "message=" + encodeURIComponent(message),
					headers: {"Content-Type": "application/x-www-form-urlencoded"},
					method: "post",
				});
			});
		</script>
	</body>
</html>
"""


def _js_string(value: str) -> str:
    """JS string literal that cannot close the surrounding <script> tag."""
    return json.dumps(value).replace("</", "<\\/")


def render_page(user_id: str, recipient: str, ws_path: str, owner_param: str) -> str:
    """Fill the demo template. Values are escaped for their HTML/JS context."""
    return (
        _PAGE.replace("__RECIPIENT_ATTR__", html.escape(recipient, quote=True))
        .replace("__USER_ID_JS__", _js_string(user_id))
        .replace("__WS_PATH_JS__", _js_string(ws_path))
        .replace("__OWNER_PARAM_JS__", _js_string(owner_param))
    )


@router.get("/", response_class=HTMLResponse)
def demo_page(
    request: Request,
    user_id: str = Query("a"),
    recipient: str = Query("b"),
):
    config = request.app.state.config
    ws_path = f"{config.websocket_path.rstrip('/')}/{config.broadcast_key}"
    return render_page(user_id, recipient, ws_path, config.owner_param)
