import requests

from metalpulse.notifier import RESEND_API_URL, ResendEmailSender


class DummyResp:
    def __init__(self, status_code=200, text='{"id":"em_1"}'):
        self.status_code = status_code
        self.text = text


class DummyHTTP:
    def __init__(self, resp):
        self.resp = resp
        self.calls = []

    def post(self, url, json=None, headers=None, cancel=None):
        self.calls.append({'url': url, 'json': json, 'headers': headers})
        if isinstance(self.resp, BaseException):
            raise self.resp
        return self.resp


def test_send_posts_to_resend():
    http = DummyHTTP(DummyResp())
    sender = ResendEmailSender('re_key', 'alerts@example.com', from_name='MetalPulse', http=http)
    assert sender.send('user@example.com', 'Subject', '<p>hi</p>') is True
    call = http.calls[0]
    assert call['url'] == RESEND_API_URL
    assert call['headers']['Authorization'] == 'Bearer re_key'
    assert call['json'] == {
        'from': 'MetalPulse <alerts@example.com>',
        'to': ['user@example.com'],
        'subject': 'Subject',
        'html': '<p>hi</p>',
    }
    assert sender.stats() == {'sent': 1, 'failed': 0}


def test_sender_without_name_uses_bare_address():
    assert ResendEmailSender('k', 'alerts@example.com', http=DummyHTTP(DummyResp())).sender == 'alerts@example.com'


def test_rejected_or_unreachable_returns_false():
    sender = ResendEmailSender('k', 'a@example.com', http=DummyHTTP(DummyResp(422, '{"message":"invalid to"}')))
    assert sender.send('bad', 's', 'b') is False

    sender = ResendEmailSender('k', 'a@example.com', http=DummyHTTP(requests.Timeout('slow')))
    assert sender.send('user@example.com', 's', 'b') is False
    assert sender.stats()['failed'] == 1


def test_unconfigured_sender_does_not_call_api():
    http = DummyHTTP(DummyResp())
    assert ResendEmailSender('', 'a@example.com', http=http).send('u@example.com', 's', 'b') is False
    assert http.calls == []
